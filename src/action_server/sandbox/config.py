"""Configuration for the sandboxed command-execution pipeline."""

from __future__ import annotations

import signal
import tempfile
from dataclasses import dataclass, field

from action_server.exceptions import ConfigurationError


@dataclass
class SandboxConfig:
    """All tunables for running the external tool in throwaway directories."""

    # ── Admission ────────────────────────────────────────────────────────
    max_concurrency: int = 5

    # ── Execution limits ─────────────────────────────────────────────────
    timeout_ms: int = 30_000
    kill_signal: str = "SIGTERM"
    kill_grace_period: float = 2.0  # seconds before escalating to SIGKILL

    # ── Tool ─────────────────────────────────────────────────────────────
    command: str = "gemini"
    command_args: tuple[str, ...] = ("--sandbox",)

    # ── Workspace ────────────────────────────────────────────────────────
    scratch_root: str = field(default_factory=tempfile.gettempdir)
    workdir_prefix: str = "gemini-"

    def __post_init__(self) -> None:
        if isinstance(self.max_concurrency, bool) or not isinstance(self.max_concurrency, int):
            raise ConfigurationError(
                f"max_concurrency must be an integer, got {self.max_concurrency!r}"
            )
        if self.max_concurrency < 1:
            raise ConfigurationError(
                f"max_concurrency must be positive, got {self.max_concurrency}"
            )
        if self.timeout_ms <= 0:
            raise ConfigurationError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.kill_grace_period < 0:
            raise ConfigurationError(
                f"kill_grace_period must not be negative, got {self.kill_grace_period}"
            )
        if not self.command.strip():
            raise ConfigurationError("command must not be empty")
        if not self.workdir_prefix or "/" in self.workdir_prefix or "\\" in self.workdir_prefix:
            raise ConfigurationError(
                f"workdir_prefix must be a plain name fragment, got {self.workdir_prefix!r}"
            )
        self.command_args = tuple(self.command_args)
        # Raises for unknown signal names
        self.signal_number()

    def signal_number(self) -> signal.Signals:
        """Resolve ``kill_signal`` (e.g. ``"SIGTERM"``) to a signal enum."""
        try:
            return signal.Signals[self.kill_signal.upper()]
        except KeyError:
            raise ConfigurationError(f"Unknown kill signal: {self.kill_signal!r}") from None
