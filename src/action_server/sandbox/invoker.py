"""Subprocess runner for the external tool.

The command and its fixed arguments belong to the invoker; caller text only
ever reaches the process on stdin. The child inherits the host environment
(so API keys and other credentials keep working) with ``PATH`` propagated
explicitly.

Deadline handling::

    t = 0            spawn, write stdin, close it
    t = timeout      send kill_signal (SIGTERM by default)
    + grace period   SIGKILL if still alive
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from pathlib import Path
from typing import Optional, Sequence

from action_server.exceptions import ToolStartupError

from .models import InvocationResult

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124

# Output still buffered by grandchildren holding the pipes open is abandoned
# after this many seconds once the tool itself is gone.
_DRAIN_TIMEOUT = 2.0


def _decode_stream(data: Optional[bytes]) -> str:
    if not data:
        return ""
    text = data.decode("utf-8", errors="replace")
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


class ProcessInvoker:
    """Runs the external tool once per call, bounded by a deadline."""

    def __init__(
        self,
        command: str = "gemini",
        fixed_args: Sequence[str] = ("--sandbox",),
        kill_signal: signal.Signals = signal.SIGTERM,
        kill_grace_period: float = 2.0,
    ):
        self.command = command
        self.fixed_args = tuple(fixed_args)
        self.kill_signal = kill_signal
        self.kill_grace_period = kill_grace_period

    @property
    def command_line(self) -> str:
        return " ".join([self.command, *self.fixed_args])

    def build_env(self) -> dict[str, str]:
        env = os.environ.copy()
        env["PATH"] = os.environ.get("PATH", os.defpath)
        return env

    async def run(
        self,
        stdin_payload: str,
        working_directory: str | Path,
        timeout_ms: int = 30_000,
    ) -> InvocationResult:
        """Run the tool and normalise its outcome.

        Non-zero exits and timeouts come back as an :class:`InvocationResult`
        with ``failure_message`` set. Only a failure to launch raises.
        """
        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                *self.fixed_args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(working_directory),
                env=self.build_env(),
            )
        except FileNotFoundError as exc:
            raise ToolStartupError(
                f"Command not found: {self.command}", command=self.command
            ) from exc
        except OSError as exc:
            raise ToolStartupError(
                f"Command failed to start: {self.command_line}: {exc}",
                command=self.command,
            ) from exc

        communicate = asyncio.create_task(
            process.communicate(stdin_payload.encode("utf-8"))
        )
        timed_out = False
        try:
            stdout, stderr = await asyncio.wait_for(
                asyncio.shield(communicate), timeout=timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(
                "Command timed out after %d ms, sending %s (pid=%s)",
                timeout_ms, self.kill_signal.name, process.pid,
            )
            stdout, stderr = await self._terminate(process, communicate)
        except asyncio.CancelledError:
            await self._terminate(process, communicate)
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        return self._to_result(
            returncode=process.returncode,
            stdout=_decode_stream(stdout),
            stderr=_decode_stream(stderr),
            timed_out=timed_out,
            timeout_ms=timeout_ms,
            duration_ms=duration_ms,
        )

    async def _terminate(
        self, process: asyncio.subprocess.Process, communicate: asyncio.Task
    ) -> tuple[Optional[bytes], Optional[bytes]]:
        """Signal → grace period → SIGKILL, then collect whatever was output."""
        if process.returncode is None:
            try:
                process.send_signal(self.kill_signal)
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self.kill_grace_period)
            except asyncio.TimeoutError:
                logger.warning("Process %s ignored %s, killing", process.pid, self.kill_signal.name)
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                try:
                    await asyncio.wait_for(process.wait(), timeout=_DRAIN_TIMEOUT)
                except asyncio.TimeoutError:
                    pass

        try:
            return await asyncio.wait_for(communicate, timeout=_DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            return None, None

    def _to_result(
        self,
        *,
        returncode: Optional[int],
        stdout: str,
        stderr: str,
        timed_out: bool,
        timeout_ms: int,
        duration_ms: int,
    ) -> InvocationResult:
        if timed_out:
            return InvocationResult(
                stdout=stdout,
                exit_code=TIMEOUT_EXIT_CODE,
                stderr=stderr or None,
                failure_message=(
                    f"Command timed out after {timeout_ms} milliseconds: {self.command_line}"
                ),
                timed_out=True,
                duration_ms=duration_ms,
            )

        if returncode == 0:
            return InvocationResult(
                stdout=stdout,
                exit_code=0,
                stderr=stderr or None,
                duration_ms=duration_ms,
            )

        if returncode is not None and returncode < 0:
            signum = -returncode
            message = f"Command was killed with {_signal_name(signum)}: {self.command_line}"
            exit_code = 128 + signum
        else:
            exit_code = returncode if returncode is not None else 1
            message = f"Command failed with exit code {exit_code}: {self.command_line}"
        if stderr:
            message = f"{message}\n{stderr}"

        return InvocationResult(
            stdout=stdout,
            exit_code=exit_code,
            stderr=stderr or None,
            failure_message=message,
            duration_ms=duration_ms,
        )
