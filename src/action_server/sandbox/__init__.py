"""Sandboxed command execution for the action server.

Every invocation runs the external tool inside its own throwaway directory
under a shared scratch root, behind a bounded FIFO admission queue.
Directories left behind by a crash are swept at startup.
"""

from .config import SandboxConfig
from .context import ExecutionContextManager, augment_instruction
from .invoker import ProcessInvoker
from .models import Attachment, ExecutionContext, InvocationRequest, InvocationResult
from .queue import AdmissionQueue
from .reaper import reap_orphans
from .runner import ActionRunner

__all__ = [
    "ActionRunner",
    "AdmissionQueue",
    "Attachment",
    "ExecutionContext",
    "ExecutionContextManager",
    "InvocationRequest",
    "InvocationResult",
    "ProcessInvoker",
    "SandboxConfig",
    "augment_instruction",
    "reap_orphans",
]
