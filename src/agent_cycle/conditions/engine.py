"""Evaluate termination conditions against an improvement-cycle context."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agent_cycle.conditions.models import (
    AllOf,
    AnyOf,
    Custom,
    FieldSet,
    FieldValue,
    MaxCost,
    MaxRounds,
    NoImprovement,
    Not,
    TargetScore,
    TerminationCondition,
)
from agent_cycle.execution.shared import maybe_await

if TYPE_CHECKING:
    from agent_cycle.cycle.models import RoundRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CycleContext:
    """Cycle state visible to termination conditions."""

    current_round: int
    total_cost: float = 0.0
    latest_score: float | None = None
    previous_scores: list[float] = field(default_factory=list)
    history: Sequence[RoundRecord] = ()
    fields: Any = None


@dataclass(frozen=True, slots=True)
class TerminationCheck:
    terminated: bool
    reason: str
    matched_condition: TerminationCondition | None = None


def get_field_value(source: Any, path: str) -> Any:
    """Walk a dotted path through mapping keys, sequence indexes and attributes.

    Returns None when any segment is missing.
    """

    current = source
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return None
        else:
            current = getattr(current, part, None)
    return current


async def check_condition(  # noqa: C901, PLR0911
    condition: TerminationCondition,
    ctx: CycleContext,
) -> TerminationCheck:
    """Evaluate one condition, including composites."""

    if isinstance(condition, MaxRounds):
        if ctx.current_round >= condition.count:
            return _met(condition, f"Maximum rounds reached ({condition.count})")
        return _not_met(f"Round {ctx.current_round} of {condition.count}")

    if isinstance(condition, MaxCost):
        spent = f"${ctx.total_cost:.2f}"
        budget = f"${condition.budget:.2f}"
        if ctx.total_cost >= condition.budget:
            return _met(condition, f"Cost limit exceeded ({spent} >= {budget})")
        return _not_met(f"Cost {spent} under limit {budget}")

    if isinstance(condition, TargetScore):
        if ctx.latest_score is None:
            return _not_met(f"No score yet for target {condition.threshold}")
        if ctx.latest_score >= condition.threshold:
            return _met(
                condition,
                f"Target score {condition.threshold} reached (current: {ctx.latest_score})",
            )
        return _not_met(f"Score {ctx.latest_score} below target {condition.threshold}")

    if isinstance(condition, FieldSet):
        value = get_field_value(ctx.fields, condition.path)
        if value is not None:
            return _met(condition, f'Field "{condition.path}" is set (value: {_render(value)})')
        return _not_met(f'Field "{condition.path}" is not set')

    if isinstance(condition, FieldValue):
        value = get_field_value(ctx.fields, condition.path)
        if value == condition.expected:
            return _met(condition, f'Field "{condition.path}" equals expected value')
        return _not_met(
            f'Field "{condition.path}" does not equal expected value (got: {_render(value)})'
        )

    if isinstance(condition, NoImprovement):
        return _check_no_improvement(condition, ctx)

    if isinstance(condition, Custom):
        return await _check_custom(condition, ctx)

    if isinstance(condition, (AllOf, AnyOf)):
        return await _check_composite(condition, ctx)

    if isinstance(condition, Not):
        inner = await check_condition(condition.condition, ctx)
        if not inner.terminated:
            return _met(condition, f"{condition.describe()} met")
        return _not_met(f"{condition.describe()} not met")

    raise TypeError(f"Unknown termination condition: {condition!r}")


async def check_termination(
    conditions: Sequence[TerminationCondition],
    ctx: CycleContext,
) -> TerminationCheck:
    """OR the conditions in order; the first terminated check wins."""

    if not conditions:
        return _not_met("No termination conditions specified")
    for condition in conditions:
        check = await check_condition(condition, ctx)
        if check.terminated:
            return check
    return _not_met("No termination conditions met")


def _check_no_improvement(condition: NoImprovement, ctx: CycleContext) -> TerminationCheck:
    stalled = 0
    for record in reversed(ctx.history):
        if record.score_delta is None or record.score_delta > condition.min_delta:
            break
        stalled += 1

    if stalled >= condition.consecutive_rounds:
        noun = "round" if stalled == 1 else "rounds"
        return _met(condition, f"No improvement for {stalled} consecutive {noun}")
    noun = "round" if stalled == 1 else "rounds"
    return _not_met(
        f"{stalled} {noun} without improvement (need {condition.consecutive_rounds})"
    )


async def _check_custom(condition: Custom, ctx: CycleContext) -> TerminationCheck:
    description = condition.describe()
    try:
        should_stop = await maybe_await(condition.check(ctx))
    except Exception as error:
        logger.warning("Termination check %r failed: %s", description, error)
        return _not_met(f"{description} check failed: {error}")
    if should_stop:
        return _met(condition, f"{description} met")
    return _not_met(f"{description} not met")


async def _check_composite(condition: AllOf | AnyOf, ctx: CycleContext) -> TerminationCheck:
    description = condition.describe()
    if not condition.conditions:
        return _not_met(description)

    require_all = isinstance(condition, AllOf)
    for child in condition.conditions:
        check = await check_condition(child, ctx)
        if require_all and not check.terminated:
            return _not_met(f"{description} not met")
        if not require_all and check.terminated:
            return _met(condition, f"{description} met")

    if require_all:
        return _met(condition, f"{description} met")
    return _not_met(f"{description} not met")


def _met(condition: TerminationCondition, reason: str) -> TerminationCheck:
    return TerminationCheck(terminated=True, reason=reason, matched_condition=condition)


def _not_met(reason: str) -> TerminationCheck:
    return TerminationCheck(terminated=False, reason=reason)


def _render(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(value)
