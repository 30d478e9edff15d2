"""Host for work that returns one value."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from agent_cycle.execution.base import BaseExecutionHost
from agent_cycle.execution.cancellation import CancellationToken
from agent_cycle.execution.models import ExecutionResult, ExecutionStatus
from agent_cycle.execution.observer import ExecutionObserver, notify, notify_terminal
from agent_cycle.execution.session import ExecutionSession
from agent_cycle.execution.shared import determine_status, maybe_await, normalize_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

SimpleWork = Callable[[ExecutionSession], Awaitable[T] | T]


class SimpleExecutionHost(BaseExecutionHost[T]):
    """Run ``work(session)`` once and report a single terminal result."""

    def __init__(
        self,
        work: SimpleWork[T],
        *,
        name: str = "execution",
        token: CancellationToken | None = None,
        observer: ExecutionObserver | None = None,
    ) -> None:
        super().__init__(name=name, token=token, observer=observer)
        self._work = work

    async def _drive(self) -> ExecutionResult[T]:
        session = ExecutionSession(token=self._token, hooks=self._hooks)
        logger.debug("Execution %s started", self.name)
        notify(self._observer, "start", self.name)

        async def _invoke() -> T:
            return await maybe_await(self._work(session))

        value, error = await self._run_work(_invoke)
        await self.cleanup()

        status = determine_status(
            cancel_requested=self._cancel_requested,
            token=self._token,
            error=error,
        )
        result: ExecutionResult[T] = ExecutionResult(
            status=status,
            summary=session.summary(),
            value=value if status is ExecutionStatus.SUCCEEDED else None,
            error=normalize_error(error) if status is ExecutionStatus.FAILED else None,
        )
        logger.debug(
            "Execution %s finished: status=%s duration_ms=%.1f",
            self.name,
            status.value,
            result.summary.duration_ms,
        )
        notify_terminal(self._observer, self.name, result)
        return result
