"""End-to-end tests for the invocation pipeline."""

from __future__ import annotations

import asyncio
import base64
import json
from dataclasses import replace

import pytest
from conftest import MISSING_TOOL, PONG_TOOL, RECORD_TOOL, SLEEP_TOOL, StubInvoker, prefixed_dirs, python_tool

from action_server.exceptions import ResourceError, ToolStartupError
from action_server.sandbox.context import ExecutionContextManager
from action_server.sandbox.invoker import ProcessInvoker
from action_server.sandbox.models import Attachment, InvocationRequest, InvocationResult
from action_server.sandbox.runner import ActionRunner


class CountingContexts(ExecutionContextManager):
    """Tracks how many directories exist at once and in total."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.acquired = 0
        self.released = 0
        self.live = 0
        self.peak = 0

    async def acquire(self):
        ctx = await super().acquire()
        self.acquired += 1
        self.live += 1
        self.peak = max(self.peak, self.live)
        return ctx

    async def release(self, ctx):
        first = not ctx.released
        ok = await super().release(ctx)
        if first:
            self.released += 1
            self.live -= 1
        return ok


class SlowInvoker(ProcessInvoker):
    """Sleeps instead of spawning; records how many runs overlap."""

    def __init__(self):
        super().__init__(command="slow-tool", fixed_args=())
        self.in_flight = 0
        self.peak = 0
        self.directories = []

    async def run(self, stdin_payload, working_directory, timeout_ms=30_000):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        self.directories.append(working_directory)
        try:
            await asyncio.sleep(0.02)
        finally:
            self.in_flight -= 1
        return InvocationResult(stdout=stdin_payload, exit_code=0)


def _runner(config, invoker, contexts=None) -> ActionRunner:
    contexts = contexts or CountingContexts(config.scratch_root, prefix=config.workdir_prefix)
    return ActionRunner(config, contexts=contexts, invoker=invoker)


@pytest.mark.asyncio
async def test_attachments_are_present_while_tool_runs(sandbox_config, scratch_root):
    runner = _runner(sandbox_config, python_tool(RECORD_TOOL))
    request = InvocationRequest(
        "summarize", [Attachment("a.txt", base64.b64encode(b"hi").decode())]
    )

    result = await runner.invoke(request)
    recorded = json.loads(result.stdout)

    assert recorded["stdin"] == "Here are the user provided files for context: @a.txt\n\nsummarize"
    assert recorded["files"] == {"a.txt": "hi"}
    assert recorded["cwd"].startswith(str(scratch_root.resolve()))
    assert prefixed_dirs(scratch_root) == []


@pytest.mark.asyncio
async def test_plain_instruction_passes_through(sandbox_config):
    invoker = StubInvoker()
    runner = _runner(sandbox_config, invoker)

    await runner.invoke(InvocationRequest("ping"))

    stdin_payload, _, timeout_ms = invoker.calls[0]
    assert stdin_payload == "ping"
    assert timeout_ms == sandbox_config.timeout_ms


@pytest.mark.asyncio
async def test_success_result(sandbox_config, scratch_root):
    contexts = CountingContexts(scratch_root)
    runner = _runner(sandbox_config, python_tool(PONG_TOOL), contexts)

    result = await runner.invoke(InvocationRequest("ping"))

    assert result.to_response() == {"output": "pong", "exitCode": 0}
    assert (contexts.acquired, contexts.released) == (1, 1)


@pytest.mark.asyncio
async def test_tool_failure_is_returned_and_cleaned_up(sandbox_config, scratch_root):
    contexts = CountingContexts(scratch_root)
    runner = _runner(sandbox_config, python_tool(MISSING_TOOL), contexts)

    result = await runner.invoke(InvocationRequest("ping"))

    assert result.exit_code == 127
    assert result.failure_message
    assert (contexts.acquired, contexts.released) == (1, 1)
    assert prefixed_dirs(scratch_root) == []


@pytest.mark.asyncio
async def test_timeout_still_removes_directory(sandbox_config, scratch_root):
    config = replace(sandbox_config, timeout_ms=400)
    contexts = CountingContexts(scratch_root)
    runner = _runner(config, python_tool(SLEEP_TOOL, kill_grace_period=1.0), contexts)

    result = await runner.invoke(InvocationRequest("ping"))

    assert result.timed_out
    assert result.failure_message
    assert (contexts.acquired, contexts.released) == (1, 1)
    assert prefixed_dirs(scratch_root) == []


@pytest.mark.asyncio
async def test_bad_attachment_aborts_before_tool_runs(sandbox_config, scratch_root):
    invoker = StubInvoker()
    contexts = CountingContexts(scratch_root)
    runner = _runner(sandbox_config, invoker, contexts)
    request = InvocationRequest("read it", [Attachment("a.txt", "not base64!!")])

    with pytest.raises(ResourceError):
        await runner.invoke(request)

    assert invoker.calls == []
    assert (contexts.acquired, contexts.released) == (1, 1)
    assert prefixed_dirs(scratch_root) == []
    assert runner.queue.pending == 0


@pytest.mark.asyncio
async def test_startup_error_propagates_after_cleanup(sandbox_config, scratch_root):
    contexts = CountingContexts(scratch_root)
    invoker = ProcessInvoker(command="definitely-not-a-real-tool-4f1c", fixed_args=())
    runner = _runner(sandbox_config, invoker, contexts)

    with pytest.raises(ToolStartupError):
        await runner.invoke(InvocationRequest("ping"))

    assert (contexts.acquired, contexts.released) == (1, 1)
    assert prefixed_dirs(scratch_root) == []


@pytest.mark.asyncio
async def test_unwritable_scratch_root_fails_fast(sandbox_config, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    invoker = StubInvoker()
    runner = ActionRunner(replace(sandbox_config, scratch_root=str(blocker)), invoker=invoker)

    with pytest.raises(ResourceError):
        await runner.invoke(InvocationRequest("ping"))
    assert invoker.calls == []


@pytest.mark.asyncio
async def test_concurrency_bound_covers_directory_lifetime(sandbox_config, scratch_root):
    config = replace(sandbox_config, max_concurrency=3)
    invoker = SlowInvoker()
    contexts = CountingContexts(scratch_root)
    runner = _runner(config, invoker, contexts)

    results = await asyncio.gather(
        *(runner.invoke(InvocationRequest(f"job {i}")) for i in range(10))
    )

    assert [r.stdout for r in results] == [f"job {i}" for i in range(10)]
    assert invoker.peak == 3
    assert contexts.peak <= 3
    assert (contexts.acquired, contexts.released) == (10, 10)
    assert len(set(invoker.directories)) == 10


@pytest.mark.asyncio
async def test_start_reaps_orphans(sandbox_config, scratch_root):
    (scratch_root / "gemini-crashed1").mkdir()
    (scratch_root / "gemini-crashed2").mkdir()
    (scratch_root / "keep-me").mkdir()
    runner = _runner(sandbox_config, StubInvoker())

    await runner.start()

    assert prefixed_dirs(scratch_root) == []
    assert (scratch_root / "keep-me").is_dir()


@pytest.mark.asyncio
async def test_builds_components_from_config(sandbox_config):
    runner = ActionRunner(sandbox_config)

    assert runner.queue.max_concurrency == sandbox_config.max_concurrency
    assert runner.invoker.command_line == "gemini --sandbox"
    assert str(runner.contexts.scratch_root) == sandbox_config.scratch_root
    assert runner.contexts.prefix == "gemini-"
