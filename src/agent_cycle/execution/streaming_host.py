"""Host for work that produces an ordered stream of events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

from agent_cycle.errors import ExecutionError
from agent_cycle.execution.base import BaseExecutionHost
from agent_cycle.execution.cancellation import CancellationToken
from agent_cycle.execution.models import ExecutionResult, ExecutionStatus, StreamingEvent
from agent_cycle.execution.observer import ExecutionObserver, notify, notify_terminal
from agent_cycle.execution.session import StreamingSession
from agent_cycle.execution.shared import (
    determine_status,
    is_cancellation_error,
    maybe_await,
    normalize_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

StreamingWork = Callable[[StreamingSession], Awaitable[Any] | Any]

MISSING_RESULT_MESSAGE = "Execution finished without a result"
ALREADY_CONSUMED_MESSAGE = "Execution already consumed"


class StreamingExecutionHost(BaseExecutionHost[T]):
    """Run ``work(session)`` and expose the events it emits.

    A single driver task feeds a buffer; ``stream()`` reads the buffer live
    and ``result()`` waits for the same production to finish. Events keep
    production order. A cancelled execution ends without an error event.
    """

    def __init__(
        self,
        work: StreamingWork,
        *,
        name: str = "execution",
        token: CancellationToken | None = None,
        observer: ExecutionObserver | None = None,
    ) -> None:
        super().__init__(name=name, token=token, observer=observer)
        self._work = work
        self._buffer: asyncio.Queue[StreamingEvent | None] = asyncio.Queue()
        self._stream_taken = False

    def stream(self) -> AsyncIterator[StreamingEvent]:
        """Return the event iterator; it can be obtained once."""

        if self._stream_taken:
            raise ExecutionError(ALREADY_CONSUMED_MESSAGE, context={"execution": self.name})
        self._stream_taken = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamingEvent]:
        self.start()
        while True:
            event = await self._buffer.get()
            if event is None:
                return
            yield event

    def _publish(self, event: StreamingEvent) -> None:
        self._buffer.put_nowait(event)
        if not event.is_terminal:
            notify(self._observer, "emit", self.name, event)

    async def _drive(self) -> ExecutionResult[T]:
        session = StreamingSession(token=self._token, hooks=self._hooks, sink=self._publish)
        logger.debug("Streaming execution %s started", self.name)
        notify(self._observer, "start", self.name)

        async def _invoke() -> None:
            await maybe_await(self._work(session))

        _, error = await self._run_work(_invoke)
        cancelled = self._cancel_requested or self._token.cancelled or is_cancellation_error(error)

        if not cancelled:
            # The terminal event already sent to consumers decides the outcome.
            if session.finished:
                if error is not None and session.failure is None:
                    logger.warning(
                        "Streaming execution %s raised after done(): %s",
                        self.name,
                        error,
                    )
                error = session.failure
            else:
                if error is None:
                    error = ExecutionError(
                        MISSING_RESULT_MESSAGE,
                        context={"execution": self.name},
                    )
                session.fail(error)

        await self.cleanup()

        status = determine_status(
            cancel_requested=self._cancel_requested,
            token=self._token,
            error=error,
        )
        result: ExecutionResult[T] = ExecutionResult(
            status=status,
            summary=session.summary(),
            value=session.value if status is ExecutionStatus.SUCCEEDED else None,
            error=normalize_error(error) if status is ExecutionStatus.FAILED else None,
            events=session.events,
        )
        logger.debug(
            "Streaming execution %s finished: status=%s events=%s",
            self.name,
            status.value,
            len(result.events),
        )
        notify_terminal(self._observer, self.name, result)
        self._buffer.put_nowait(None)
        return result
