"""Environment-based configuration for the action server.

Settings come from environment variables (and a ``.env`` file in the
working directory). Variable names match the field names, case-insensitive:
``PORT``, ``HOST``, ``MAX_CONCURRENT_REQUESTS``, ``REQUEST_TIMEOUT`` ...
"""

from __future__ import annotations

import shlex
import tempfile

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from action_server.sandbox.config import SandboxConfig


class ServiceConfig(BaseSettings):
    """Action server configuration."""

    # ── Server ───────────────────────────────────────────────────────────
    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=1, le=65535)
    body_limit: int = 1_048_576  # bytes

    # ── Admission / execution ────────────────────────────────────────────
    max_concurrent_requests: int = 5
    request_timeout: int = 30_000  # milliseconds

    # ── Tool ─────────────────────────────────────────────────────────────
    tool_command: str = "gemini"
    tool_args: str = "--sandbox"  # shell-style, split with shlex
    kill_signal: str = "SIGTERM"

    # ── Workspace ────────────────────────────────────────────────────────
    scratch_root: str = Field(default_factory=tempfile.gettempdir)
    workdir_prefix: str = "gemini-"

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_file: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def to_sandbox_config(self) -> SandboxConfig:
        """Map service settings onto the core pipeline config.

        Raises ConfigurationError for values the pipeline rejects.
        """
        return SandboxConfig(
            max_concurrency=self.max_concurrent_requests,
            timeout_ms=self.request_timeout,
            kill_signal=self.kill_signal,
            command=self.tool_command,
            command_args=tuple(shlex.split(self.tool_args)),
            scratch_root=self.scratch_root,
            workdir_prefix=self.workdir_prefix,
        )
