"""Per-invocation working directories.

Each invocation gets a fresh ``<prefix><random>`` directory under the scratch
root. Attachments are decoded and written into it before the tool starts,
and the whole directory is removed afterwards no matter how the invocation
ended. The fixed prefix is what lets the orphan reaper find directories
left behind by a crashed process.

Usage::

    manager = ExecutionContextManager("/tmp", prefix="gemini-")
    async with manager.scoped(request.attachments) as ctx:
        ...  # run the tool with cwd=ctx.working_directory
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Sequence

from action_server.exceptions import ResourceError

from .models import Attachment, ExecutionContext

logger = logging.getLogger(__name__)

ATTACHMENT_PREAMBLE = "Here are the user provided files for context:"
ATTACHMENT_MARKER = "@"


def augment_instruction(instruction: str, attachments: Sequence[Attachment]) -> str:
    """Prefix the instruction with an ``@name`` reference line per attachment.

    The tool treats ``@path`` as "read this local file". With no
    attachments the instruction is returned unchanged.
    """
    if not attachments:
        return instruction
    refs = " ".join(f"{ATTACHMENT_MARKER}{a.name}" for a in attachments)
    return f"{ATTACHMENT_PREAMBLE} {refs}\n\n{instruction}"


def _decode(attachment: Attachment) -> bytes:
    # Line-wrapped (MIME style) payloads are accepted
    content = "".join(attachment.content.split())
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ResourceError(
            f"Attachment '{attachment.name}' is not valid base64: {exc}",
            details={"attachment": attachment.name},
        ) from exc


def _target_path(root: Path, name: str) -> Path:
    """Resolve ``name`` inside ``root``, refusing anything that escapes it."""
    if not name or not name.strip():
        raise ResourceError("Attachment name must not be empty")
    candidate = Path(name)
    if candidate.is_absolute():
        raise ResourceError(
            f"Attachment name must be relative: {name!r}",
            details={"attachment": name},
        )
    base = root.resolve()
    try:
        target = (base / candidate).resolve()
    except (OSError, ValueError) as exc:
        raise ResourceError(
            f"Invalid attachment name {name!r}: {exc}",
            details={"attachment": name},
        ) from exc
    if target == base or not target.is_relative_to(base):
        raise ResourceError(
            f"Attachment name escapes the working directory: {name!r}",
            details={"attachment": name},
        )
    return target


class ExecutionContextManager:
    """Creates, fills and tears down isolated working directories."""

    def __init__(self, scratch_root: str | Path, prefix: str = "gemini-"):
        self.scratch_root = Path(scratch_root)
        self.prefix = prefix

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def acquire(self) -> ExecutionContext:
        """Create a fresh, uniquely named directory under the scratch root."""
        try:
            path = await asyncio.to_thread(
                tempfile.mkdtemp, prefix=self.prefix, dir=str(self.scratch_root)
            )
        except OSError as exc:
            raise ResourceError(
                f"Could not create working directory in {self.scratch_root}: {exc}",
                details={"scratch_root": str(self.scratch_root)},
            ) from exc
        ctx = ExecutionContext(working_directory=Path(path))
        logger.debug("Acquired working directory %s", ctx.working_directory)
        return ctx

    async def materialize(
        self, ctx: ExecutionContext, attachments: Sequence[Attachment]
    ) -> list[Path]:
        """Decode and write every attachment into the context's directory.

        Any failure aborts with :class:`ResourceError`. Files already
        written stay put; the directory is about to be released anyway.
        """
        if not attachments:
            return []

        payloads = [
            (_target_path(ctx.working_directory, a.name), _decode(a))
            for a in attachments
        ]

        def _write_all() -> list[Path]:
            written: list[Path] = []
            # Sequential, so a repeated name deterministically keeps the last one
            for target, data in payloads:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
                written.append(target)
            return written

        try:
            written = await asyncio.to_thread(_write_all)
        except OSError as exc:
            raise ResourceError(
                f"Could not write attachment into {ctx.working_directory}: {exc}",
                details={"working_directory": str(ctx.working_directory)},
            ) from exc

        logger.debug(
            "Materialized %d attachment(s) in %s", len(written), ctx.working_directory
        )
        return written

    async def release(self, ctx: ExecutionContext) -> bool:
        """Remove the directory tree. Never raises; returns ``False`` on failure."""
        if ctx.released:
            return True
        ctx.released = True
        try:
            await asyncio.to_thread(shutil.rmtree, ctx.working_directory)
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.warning(
                "Failed to cleanup temporary directory %s: %s",
                ctx.working_directory,
                exc,
                extra={"working_directory": str(ctx.working_directory)},
            )
            return False
        logger.debug("Released working directory %s", ctx.working_directory)
        return True

    @asynccontextmanager
    async def scoped(
        self, attachments: Sequence[Attachment] = ()
    ) -> AsyncIterator[ExecutionContext]:
        """acquire → materialize → yield → release, releasing on every path."""
        ctx = await self.acquire()
        try:
            await self.materialize(ctx, attachments)
            yield ctx
        finally:
            await self.release(ctx)
