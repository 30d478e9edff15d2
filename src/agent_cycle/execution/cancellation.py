"""Explicit cancellation handle threaded through every suspension point."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable

from agent_cycle.errors import OperationCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe, one-way cancellation flag with callbacks.

    A token built with parents is cancelled as soon as any parent is.
    """

    def __init__(self, *parents: CancellationToken) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._detach_parents: list[Callable[[], None]] = []
        for parent in parents:
            self._detach_parents.append(parent.add_callback(self._make_forwarder(parent)))

    @classmethod
    def linked(cls, *tokens: CancellationToken | None) -> CancellationToken:
        """Combine tokens; the result is cancelled when any input is."""

        return cls(*(token for token in tokens if token is not None))

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    @property
    def reason(self) -> str | None:
        with self._lock:
            return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        """Cancel the token; return False when it was already cancelled."""

        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            self._reason = reason
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")
        return True

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it.

        The callback runs immediately when the token is already cancelled.
        """

        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback()
        return lambda: None

    def detach(self) -> None:
        """Stop following parent tokens."""

        detach_parents, self._detach_parents = self._detach_parents, []
        for detach_parent in detach_parents:
            detach_parent()

    def raise_if_cancelled(self) -> None:
        with self._lock:
            if not self._cancelled:
                return
            reason = self._reason
        raise OperationCancelledError(
            reason or "Operation cancelled",
            context={"reason": reason},
        )

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            loop.call_soon_threadsafe(_resolve)

        def _resolve() -> None:
            if not waiter.done():
                waiter.set_result(None)

        remove = self.add_callback(_wake)
        try:
            await waiter
        finally:
            remove()

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def _make_forwarder(self, parent: CancellationToken) -> Callable[[], None]:
        return lambda: self.cancel(parent.reason)
