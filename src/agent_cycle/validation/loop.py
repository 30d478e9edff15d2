"""Execute-validate-retry loop with bounded attempts."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from agent_cycle.errors import ValidationExhaustedError
from agent_cycle.execution.cancellation import CancellationToken
from agent_cycle.execution.shared import maybe_await
from agent_cycle.validation.history import ValidationAttempt, ValidationHistory, ValidationOutcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3

Execute = Callable[[ValidationHistory[T]], Awaitable[T] | T]
Validate = Callable[[T, ValidationHistory[T]], Awaitable[Any] | Any]


async def with_validation(
    execute: Execute[T],
    validate: Validate[T],
    *,
    max_attempts: int | None = DEFAULT_MAX_ATTEMPTS,
    token: CancellationToken | None = None,
    retry_delay: float = 0.0,
    on_attempt: Callable[[ValidationAttempt[T]], Any] | None = None,
) -> T:
    """Run ``execute`` until ``validate`` accepts a result.

    ``execute`` receives the history so far, so it can adapt to earlier
    rejections. Returns the accepted result; ``on_attempt`` sees every
    attempt. Validators return a ``ValidationOutcome``, a bool or a
    ``{"valid": ..., "reason": ...}`` mapping. Raises
    ``ValidationExhaustedError`` when every attempt was rejected and
    ``OperationCancelledError`` when ``token`` is cancelled between attempts.
    Exceptions from ``execute`` or ``validate`` propagate unchanged.
    """

    limit = max(1, DEFAULT_MAX_ATTEMPTS if max_attempts is None else max_attempts)
    history: ValidationHistory[T] = ValidationHistory()

    while history.next_attempt <= limit:
        if token is not None:
            token.raise_if_cancelled()

        result = await maybe_await(execute(history))
        outcome = _coerce_outcome(await maybe_await(validate(result, history)))
        attempt = history.add(result, outcome)
        if on_attempt is not None:
            await maybe_await(on_attempt(attempt))

        if attempt.valid:
            logger.debug("Validation accepted attempt %s/%s", attempt.attempt, limit)
            return attempt.result

        logger.debug(
            "Validation rejected attempt %s/%s: %s",
            attempt.attempt,
            limit,
            attempt.reason or "no reason given",
        )
        if retry_delay > 0 and history.next_attempt <= limit:
            await asyncio.sleep(retry_delay)

    raise ValidationExhaustedError(f"Validation failed after {len(history)} attempts", history)


def _coerce_outcome(value: Any) -> ValidationOutcome:
    if isinstance(value, ValidationOutcome):
        return value
    if isinstance(value, bool):
        return ValidationOutcome(valid=value)
    if isinstance(value, Mapping) and "valid" in value:
        reason = value.get("reason")
        return ValidationOutcome(
            valid=bool(value["valid"]),
            reason=str(reason) if reason is not None else None,
        )
    raise TypeError(
        "Validator must return ValidationOutcome, bool or a mapping with 'valid', "
        f"got {type(value).__name__}",
    )
