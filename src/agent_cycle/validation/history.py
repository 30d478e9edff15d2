"""Attempt records kept by the validation retry loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Decision returned by a validator."""

    valid: bool
    reason: str | None = None

    @classmethod
    def accept(cls) -> ValidationOutcome:
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: str | None = None) -> ValidationOutcome:
        return cls(valid=False, reason=reason)


@dataclass(frozen=True, slots=True)
class ValidationAttempt(Generic[T]):
    """One executed and validated attempt; ``attempt`` is 1-based."""

    attempt: int
    result: T
    valid: bool
    reason: str | None = None


class ValidationHistory(Generic[T]):
    """Append-only attempt log owned by one retry-loop invocation."""

    def __init__(self) -> None:
        self._attempts: list[ValidationAttempt[T]] = []

    def __len__(self) -> int:
        return len(self._attempts)

    @property
    def next_attempt(self) -> int:
        return len(self._attempts) + 1

    @property
    def last(self) -> ValidationAttempt[T] | None:
        return self._attempts[-1] if self._attempts else None

    @property
    def all(self) -> tuple[ValidationAttempt[T], ...]:
        return tuple(self._attempts)

    @property
    def failure_reasons(self) -> list[str]:
        """Reasons of rejected attempts that reported one."""

        return [
            attempt.reason
            for attempt in self._attempts
            if not attempt.valid and attempt.reason is not None
        ]

    @property
    def is_retry(self) -> bool:
        return bool(self._attempts)

    def add(self, result: T, outcome: ValidationOutcome) -> ValidationAttempt[T]:
        attempt = ValidationAttempt(
            attempt=self.next_attempt,
            result=result,
            valid=outcome.valid,
            reason=outcome.reason,
        )
        self._attempts.append(attempt)
        return attempt
