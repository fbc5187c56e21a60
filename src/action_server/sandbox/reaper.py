"""Startup sweep for working directories left behind by a crashed process."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def _find_stale(scratch_root: Path, prefix: str) -> list[Path]:
    with os.scandir(scratch_root) as entries:
        return [
            Path(entry.path)
            for entry in entries
            if entry.name.startswith(prefix) and entry.is_dir(follow_symlinks=False)
        ]


async def _remove(path: Path) -> bool:
    try:
        await asyncio.to_thread(shutil.rmtree, path)
    except FileNotFoundError:
        # Gone already (e.g. removed by its owner in the meantime)
        return False
    except OSError as exc:
        logger.warning("Failed to cleanup directory %s: %s", path, exc)
        return False
    logger.info("Cleaned up orphaned directory: %s", path)
    return True


async def reap_orphans(scratch_root: str | Path, prefix: str = "gemini-") -> list[Path]:
    """Remove every ``<prefix>*`` directory directly under ``scratch_root``.

    Each removal is attempted independently; one failure does not stop the
    rest. Returns the directories that were actually removed. Anything in
    the scratch root with a matching name is assumed to be an orphan, so
    this must run before the server accepts invocations.
    """
    root = Path(scratch_root)
    try:
        stale = await asyncio.to_thread(_find_stale, root, prefix)
    except OSError as exc:
        logger.warning("Failed to perform orphaned directory cleanup in %s: %s", root, exc)
        return []

    if not stale:
        return []

    logger.info("Found %d orphaned %s directories, cleaning up...", len(stale), prefix)
    outcomes = await asyncio.gather(*(_remove(p) for p in stale))
    removed = [p for p, ok in zip(stale, outcomes) if ok]
    logger.info(
        "Orphaned directory cleanup completed (%d/%d removed)", len(removed), len(stale)
    )
    return removed
