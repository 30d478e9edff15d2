"""Result, summary and event models for execution hosts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from agent_cycle.errors import OperationCancelledError

T = TypeVar("T")

COMPLETE_EVENT = "complete"
ERROR_EVENT = "error"
RESERVED_EVENT_TYPES: frozenset[str] = frozenset({COMPLETE_EVENT, ERROR_EVENT})


class ExecutionStatus(str, Enum):
    """Terminal outcome of one execution."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(frozen=True, slots=True)
class CallRecord:
    """Usage and cost of one collaborator call, recorded verbatim."""

    name: str
    cost: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True, slots=True)
class ExecutionSummary:
    """Duration, call counts and cost totals of one execution."""

    duration_ms: float = 0.0
    calls: tuple[CallRecord, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def total_cost(self) -> float:
        return sum(call.cost for call in self.calls)

    @property
    def prompt_tokens(self) -> int:
        return sum(call.prompt_tokens for call in self.calls)

    @property
    def completion_tokens(self) -> int:
        return sum(call.completion_tokens for call in self.calls)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True, slots=True)
class EventMetrics:
    """Timing attached to every streaming event."""

    timestamp: float
    elapsed_ms: float
    delta_ms: float


@dataclass(frozen=True, slots=True)
class StreamingEvent:
    """One ordered, timestamped item produced during an execution."""

    type: str
    payload: Any
    metrics: EventMetrics

    @property
    def is_terminal(self) -> bool:
        return self.type in RESERVED_EVENT_TYPES


@dataclass(frozen=True, slots=True)
class ExecutionResult(Generic[T]):
    """Terminal outcome with summary; ``events`` is empty for simple hosts."""

    status: ExecutionStatus
    summary: ExecutionSummary
    value: T | None = None
    error: BaseException | None = None
    events: tuple[StreamingEvent, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status is ExecutionStatus.FAILED

    @property
    def canceled(self) -> bool:
        return self.status is ExecutionStatus.CANCELED

    def unwrap(self) -> T:
        """Return the value, or raise the failure or cancellation."""

        if self.status is ExecutionStatus.SUCCEEDED:
            return self.value  # type: ignore[return-value]
        if self.status is ExecutionStatus.FAILED and self.error is not None:
            raise self.error
        raise OperationCancelledError("Execution was canceled")
