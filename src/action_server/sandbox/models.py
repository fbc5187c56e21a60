"""Data types shared by the sandbox pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class Attachment:
    """A file supplied with an invocation; ``content`` is base64 text."""
    name: str
    content: str


@dataclass(frozen=True)
class InvocationRequest:
    """One accepted call: an instruction plus optional attachments."""
    instruction: str
    attachments: tuple[Attachment, ...] = ()

    def __post_init__(self) -> None:
        # Accept any sequence but store an immutable tuple
        object.__setattr__(self, "attachments", tuple(self.attachments))

    @property
    def attachment_names(self) -> list[str]:
        return [a.name for a in self.attachments]


@dataclass
class ExecutionContext:
    """An isolated working directory owned by exactly one invocation."""
    working_directory: Path
    created_at: float = field(default_factory=time.monotonic)
    released: bool = False

    def __repr__(self) -> str:
        return f"ExecutionContext(dir={self.working_directory}, released={self.released})"


@dataclass
class InvocationResult:
    """Normalised outcome of one tool run.

    A non-zero exit is carried here as data (``failure_message`` set),
    never raised.
    """
    stdout: str
    exit_code: int
    stderr: Optional[str] = None
    failure_message: Optional[str] = None
    timed_out: bool = False
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and self.failure_message is None

    def to_response(self) -> dict:
        """Boundary shape: ``{output, exitCode, stderr?, error?}``."""
        response: dict = {"output": self.stdout, "exitCode": self.exit_code}
        if self.stderr:
            response["stderr"] = self.stderr
        if self.failure_message:
            response["error"] = self.failure_message
        return response
