"""Helpers shared by the simple and streaming execution hosts."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from agent_cycle.errors import ExecutionError, OperationCancelledError
from agent_cycle.execution.cancellation import CancellationToken
from agent_cycle.execution.models import ExecutionStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Await ``value`` when a callable returned an awaitable."""

    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


def is_cancellation_error(error: BaseException | None) -> bool:
    return isinstance(error, (asyncio.CancelledError, OperationCancelledError))


def normalize_error(error: object) -> BaseException:
    """Wrap non-exception failure values into ``ExecutionError``."""

    if isinstance(error, BaseException):
        return error
    return ExecutionError(str(error), context={"value": repr(error)})


def determine_status(
    *,
    cancel_requested: bool,
    token: CancellationToken | None,
    error: BaseException | None,
) -> ExecutionStatus:
    """Pick the terminal status; cancellation wins over any error."""

    if cancel_requested or (token is not None and token.cancelled):
        return ExecutionStatus.CANCELED
    if is_cancellation_error(error):
        return ExecutionStatus.CANCELED
    if error is not None:
        return ExecutionStatus.FAILED
    return ExecutionStatus.SUCCEEDED


class HookRunner:
    """Run teardown hooks at most once, in reverse registration order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ran = False
        self._hooks: list[Callable[[], Any]] = []

    def add(self, hook: Callable[[], Any]) -> None:
        with self._lock:
            if self._ran:
                raise ExecutionError("Cannot register a teardown hook after cleanup")
            self._hooks.append(hook)

    async def run(self) -> bool:
        """Return False when hooks already ran."""

        with self._lock:
            if self._ran:
                return False
            self._ran = True
            hooks, self._hooks = self._hooks, []

        for hook in reversed(hooks):
            try:
                await maybe_await(hook())
            except Exception:
                logger.exception("Teardown hook failed")
        return True
