"""End-to-end invocation pipeline.

Ties the admission queue, working-directory manager and process invoker
together. One slot is held from directory creation through directory
removal, not just for the lifetime of the subprocess.

Usage::

    runner = ActionRunner(SandboxConfig(max_concurrency=5))
    await runner.start()            # sweeps orphaned directories

    result = await runner.invoke(InvocationRequest("summarize", attachments))
    result.to_response()            # {"output": ..., "exitCode": ...}

    await runner.stop()
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import SandboxConfig
from .context import ExecutionContextManager, augment_instruction
from .invoker import ProcessInvoker
from .models import InvocationRequest, InvocationResult
from .queue import AdmissionQueue
from .reaper import reap_orphans

logger = logging.getLogger(__name__)

_LOG_PREVIEW_CHARS = 200


def _preview(text: str) -> str:
    if len(text) <= _LOG_PREVIEW_CHARS:
        return text
    return text[:_LOG_PREVIEW_CHARS] + "..."


class ActionRunner:
    """Runs invocations through queue → working directory → tool."""

    def __init__(
        self,
        config: Optional[SandboxConfig] = None,
        queue: Optional[AdmissionQueue] = None,
        contexts: Optional[ExecutionContextManager] = None,
        invoker: Optional[ProcessInvoker] = None,
    ):
        self.config = config or SandboxConfig()
        self.queue = queue or AdmissionQueue(self.config.max_concurrency)
        self.contexts = contexts or ExecutionContextManager(
            self.config.scratch_root, prefix=self.config.workdir_prefix
        )
        self.invoker = invoker or ProcessInvoker(
            command=self.config.command,
            fixed_args=self.config.command_args,
            kill_signal=self.config.signal_number(),
            kill_grace_period=self.config.kill_grace_period,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Remove directories orphaned by earlier runs. Call before serving."""
        removed = await reap_orphans(self.contexts.scratch_root, self.contexts.prefix)
        logger.info(
            "ActionRunner started (max_concurrency=%d, timeout_ms=%d, reaped=%d)",
            self.queue.max_concurrency,
            self.config.timeout_ms,
            len(removed),
        )

    async def stop(self) -> None:
        logger.info(
            "ActionRunner stopping (running=%d, waiting=%d)",
            self.queue.pending,
            self.queue.size,
        )

    # ── Invocation ────────────────────────────────────────────────────────────

    async def invoke(self, request: InvocationRequest) -> InvocationResult:
        """Run one invocation, waiting for a free slot first.

        Raises :class:`ResourceError` if the working directory cannot be
        prepared and :class:`ToolStartupError` if the tool cannot launch.
        A tool that runs and fails is returned as a result.
        """
        logger.info(
            "Invocation request started",
            extra={
                "type": "invocation_start",
                "instruction": _preview(request.instruction),
                "file_count": len(request.attachments),
                "files": request.attachment_names,
            },
        )
        return await self.queue.run(lambda: self._execute(request))

    async def _execute(self, request: InvocationRequest) -> InvocationResult:
        async with self.contexts.scoped(request.attachments) as ctx:
            stdin_payload = augment_instruction(request.instruction, request.attachments)
            result = await self.invoker.run(
                stdin_payload,
                ctx.working_directory,
                timeout_ms=self.config.timeout_ms,
            )

        log = logger.info if result.succeeded else logger.warning
        log(
            "Tool executed" if result.succeeded else "Tool failed",
            extra={
                "type": "tool_response",
                "instruction": _preview(stdin_payload),
                "files": request.attachment_names,
                "exit_code": result.exit_code,
                "timed_out": result.timed_out,
                "duration_ms": result.duration_ms,
                "stdout": result.stdout,
                "stderr": result.stderr,
            },
        )
        return result
