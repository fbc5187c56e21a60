"""Bounded-concurrency admission queue.

A counting semaphore with an explicit FIFO wait list. Each submitted task
claims a slot (or a place in the wait list) on its first step; asyncio runs
first steps in creation order, so tasks start in the order they were
submitted. When a running task finishes, its slot is handed straight to the
oldest waiter instead of being returned to the pool, which keeps later
submissions from overtaking it.

Usage::

    queue = AdmissionQueue(max_concurrency=5)
    result = await queue.run(lambda: do_work())
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Optional, TypeVar

from action_server.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AdmissionQueue:
    """Runs at most ``max_concurrency`` tasks at a time, FIFO over the rest."""

    def __init__(self, max_concurrency: int = 5):
        if isinstance(max_concurrency, bool) or not isinstance(max_concurrency, int):
            raise ConfigurationError(
                f"max_concurrency must be an integer, got {max_concurrency!r}"
            )
        if max_concurrency < 1:
            raise ConfigurationError(
                f"max_concurrency must be positive, got {max_concurrency}"
            )
        self._max_concurrency = max_concurrency
        self._running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    # ── Introspection ─────────────────────────────────────────────────────────

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def size(self) -> int:
        """Tasks waiting for a slot."""
        return sum(1 for w in self._waiters if not w.done())

    @property
    def pending(self) -> int:
        """Tasks currently holding a slot."""
        return self._running

    # ── Submission ────────────────────────────────────────────────────────────

    def submit(self, task: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """Enqueue ``task`` and return a handle resolving to its result.

        Must be called from inside a running event loop.
        """
        return asyncio.ensure_future(self._run(task))

    async def run(self, task: Callable[[], Awaitable[T]]) -> T:
        """Submit ``task`` and wait for it."""
        return await self.submit(task)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _reserve(self) -> Optional[asyncio.Future[None]]:
        """Take a free slot now, or join the wait list."""
        if self._running < self._max_concurrency and not self.size:
            self._running += 1
            return None
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        logger.debug(
            "Task queued (running=%d, waiting=%d)", self._running, self.size
        )
        return waiter

    async def _run(self, task: Callable[[], Awaitable[T]]) -> T:
        waiter = self._reserve()
        if waiter is not None:
            try:
                await waiter
            except asyncio.CancelledError:
                if waiter.done() and not waiter.cancelled():
                    # Slot was handed over just before cancellation
                    self._release()
                else:
                    try:
                        self._waiters.remove(waiter)
                    except ValueError:
                        pass
                raise

        try:
            return await task()
        finally:
            self._release()

    def _release(self) -> None:
        """Give the slot to the oldest live waiter, or return it to the pool."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._running -= 1
