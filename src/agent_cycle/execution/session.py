"""Sessions handed to work functions by execution hosts."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from agent_cycle.errors import ExecutionError
from agent_cycle.execution.cancellation import CancellationToken
from agent_cycle.execution.models import (
    COMPLETE_EVENT,
    ERROR_EVENT,
    RESERVED_EVENT_TYPES,
    CallRecord,
    EventMetrics,
    ExecutionSummary,
    StreamingEvent,
)
from agent_cycle.execution.shared import HookRunner, normalize_error


class ExecutionSession:
    """Cancellation, teardown and usage accounting for one execution."""

    def __init__(self, *, token: CancellationToken, hooks: HookRunner) -> None:
        self._token = token
        self._hooks = hooks
        self._started = time.perf_counter()
        self._calls: list[CallRecord] = []
        self._metadata: dict[str, Any] = {}

    @property
    def token(self) -> CancellationToken:
        return self._token

    def checkpoint(self) -> None:
        """Raise ``OperationCancelledError`` once the execution is cancelled."""

        self._token.raise_if_cancelled()

    def on_done(self, hook: Callable[[], Any]) -> None:
        """Register a sync or async teardown hook."""

        self._hooks.add(hook)

    def record_call(
        self,
        name: str,
        *,
        cost: float = 0.0,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> CallRecord:
        record = CallRecord(
            name=name,
            cost=cost,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
        self._calls.append(record)
        return record

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._started) * 1000.0

    def summary(self) -> ExecutionSummary:
        return ExecutionSummary(
            duration_ms=self.elapsed_ms(),
            calls=tuple(self._calls),
            metadata=dict(self._metadata),
        )


class StreamingSession(ExecutionSession):
    """Session that also produces ordered, timestamped events.

    ``done`` and ``fail`` produce the single terminal event; after either
    one the session accepts no more events.
    """

    def __init__(
        self,
        *,
        token: CancellationToken,
        hooks: HookRunner,
        sink: Callable[[StreamingEvent], None],
    ) -> None:
        super().__init__(token=token, hooks=hooks)
        self._sink = sink
        self._events: list[StreamingEvent] = []
        self._last_event_at = self._started
        self._finished = False
        self._value: Any = None
        self._failure: BaseException | None = None

    @property
    def events(self) -> tuple[StreamingEvent, ...]:
        return tuple(self._events)

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def value(self) -> Any:
        return self._value

    @property
    def failure(self) -> BaseException | None:
        return self._failure

    def emit(self, event_type: str, payload: Any = None) -> StreamingEvent:
        if event_type in RESERVED_EVENT_TYPES:
            raise ExecutionError(
                f"Event type {event_type!r} is reserved for done() and fail()",
                context={"event_type": event_type},
            )
        return self._produce(event_type, payload)

    def done(self, value: Any = None) -> StreamingEvent:
        event = self._produce(COMPLETE_EVENT, value)
        self._value = value
        self._finished = True
        return event

    def fail(self, error: object) -> StreamingEvent:
        failure = normalize_error(error)
        event = self._produce(ERROR_EVENT, failure)
        self._failure = failure
        self._finished = True
        return event

    def _produce(self, event_type: str, payload: Any) -> StreamingEvent:
        if self._finished:
            raise ExecutionError(
                "Execution already produced its terminal event",
                context={"event_type": event_type},
            )
        now = time.perf_counter()
        event = StreamingEvent(
            type=event_type,
            payload=payload,
            metrics=EventMetrics(
                timestamp=time.time(),
                elapsed_ms=(now - self._started) * 1000.0,
                delta_ms=(now - self._last_event_at) * 1000.0,
            ),
        )
        self._last_event_at = now
        self._events.append(event)
        self._sink(event)
        return event
