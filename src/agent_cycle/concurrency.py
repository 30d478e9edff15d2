"""Counting gate that bounds simultaneously active operations."""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from types import TracebackType

from agent_cycle.errors import ConfigurationError


class ConcurrencyLimiter:
    """FIFO semaphore shared by concurrent flows.

    At most ``limit`` acquisitions are outstanding without a matching release.
    Waiters are granted slots in request order; a released slot is handed to
    the next waiter directly so a late arrival cannot overtake the queue.
    The counter and queue are mutated only under the instance lock, and
    waiters are resolved on their own loop, so flows running on different
    event loops in different threads may share one limiter.
    """

    def __init__(self, limit: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ConfigurationError(
                "Concurrency limit must be a positive integer",
                context={"limit": limit},
            )
        self._limit = limit
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        """Slots currently held, including slots handed to a waking waiter."""

        with self._lock:
            return self._active

    @property
    def waiting(self) -> int:
        with self._lock:
            return len(self._waiters)

    async def acquire(self) -> None:
        """Suspend until a slot is available, then hold it."""

        with self._lock:
            if self._active < self._limit and not self._waiters:
                self._active += 1
                return
            waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)

        try:
            await waiter
        except asyncio.CancelledError:
            with self._lock:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
                    granted = False
                else:
                    granted = waiter.done() and not waiter.cancelled()
            # A slot granted to a cancelled waiter is passed on by _grant.
            if granted:
                self.release()
            raise

    def release(self) -> None:
        """Return a slot; callers must pair every acquire with one release."""

        with self._lock:
            if not self._waiters:
                self._active -= 1
                return
            waiter = self._waiters.popleft()
        waiter.get_loop().call_soon_threadsafe(self._grant, waiter)

    def _grant(self, waiter: asyncio.Future[None]) -> None:
        if waiter.cancelled():
            self.release()
            return
        waiter.set_result(None)

    async def __aenter__(self) -> ConcurrencyLimiter:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()
