"""Shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from action_server.sandbox.config import SandboxConfig
from action_server.sandbox.invoker import ProcessInvoker
from action_server.sandbox.models import InvocationResult

# Small Python programs standing in for the external tool.
ECHO_TOOL = "import sys; sys.stdout.write(sys.stdin.read())"
PONG_TOOL = "import sys; sys.stdin.read(); print('pong')"
MISSING_TOOL = (
    "import sys; sys.stdin.read(); print('partial'); "
    "sys.stderr.write('gemini: command not found\\n'); sys.exit(127)"
)
SLEEP_TOOL = "import sys, time; print('started', flush=True); time.sleep(60)"
RECORD_TOOL = (
    "import json, os, sys; data = sys.stdin.read(); "
    "print(json.dumps({'stdin': data, 'cwd': os.getcwd(), "
    "'path': os.environ.get('PATH', ''), "
    "'files': {n: open(n, 'rb').read().decode() for n in sorted(os.listdir('.'))}}))"
)


def python_tool(script: str, **kwargs) -> ProcessInvoker:
    """An invoker that runs ``python -c script`` as the tool."""
    return ProcessInvoker(command=sys.executable, fixed_args=("-c", script), **kwargs)


class StubInvoker(ProcessInvoker):
    """Invoker that records calls instead of spawning a process."""

    def __init__(self, result: InvocationResult | None = None, error: Exception | None = None):
        super().__init__(command="stub-tool", fixed_args=("--sandbox",))
        self.result = result or InvocationResult(stdout="pong", exit_code=0)
        self.error = error
        self.calls: list[tuple[str, Path, int]] = []

    async def run(self, stdin_payload, working_directory, timeout_ms=30_000):
        self.calls.append((stdin_payload, Path(working_directory), timeout_ms))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def scratch_root(tmp_path: Path) -> Path:
    root = tmp_path / "scratch"
    root.mkdir()
    return root


@pytest.fixture
def sandbox_config(scratch_root: Path) -> SandboxConfig:
    return SandboxConfig(
        max_concurrency=2,
        timeout_ms=5_000,
        scratch_root=str(scratch_root),
        kill_grace_period=1.0,
    )


def prefixed_dirs(root: Path, prefix: str = "gemini-") -> list[Path]:
    return sorted(p for p in root.iterdir() if p.name.startswith(prefix))
