"""Termination condition types and validating factories."""

from __future__ import annotations

import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from agent_cycle.errors import ConfigurationError

if TYPE_CHECKING:
    from agent_cycle.conditions.engine import CycleContext

CustomCheck = Callable[["CycleContext"], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True, slots=True)
class MaxRounds:
    count: int

    def describe(self) -> str:
        return f"maxRounds({self.count})"


@dataclass(frozen=True, slots=True)
class MaxCost:
    budget: float

    def describe(self) -> str:
        return f"maxCost(${self.budget})"


@dataclass(frozen=True, slots=True)
class TargetScore:
    threshold: float

    def describe(self) -> str:
        return f"targetScore({self.threshold})"


@dataclass(frozen=True, slots=True)
class FieldSet:
    path: str

    def describe(self) -> str:
        return f"fieldSet({self.path})"


@dataclass(frozen=True, slots=True)
class FieldValue:
    path: str
    expected: Any

    def describe(self) -> str:
        return f"fieldValue({self.path} = {self.expected!r})"


@dataclass(frozen=True, slots=True)
class Custom:
    check: CustomCheck
    description: str | None = None

    def describe(self) -> str:
        return self.description or "custom condition"


@dataclass(frozen=True, slots=True)
class NoImprovement:
    """Stop after ``consecutive_rounds`` rounds whose delta stayed within ``min_delta``."""

    consecutive_rounds: int
    min_delta: float = 0.0

    def describe(self) -> str:
        return f"noImprovement({self.consecutive_rounds}, minDelta={self.min_delta})"


@dataclass(frozen=True, slots=True)
class AllOf:
    conditions: tuple[TerminationCondition, ...]

    def describe(self) -> str:
        return _describe_composite("and", self.conditions)


@dataclass(frozen=True, slots=True)
class AnyOf:
    conditions: tuple[TerminationCondition, ...]

    def describe(self) -> str:
        return _describe_composite("or", self.conditions)


@dataclass(frozen=True, slots=True)
class Not:
    condition: TerminationCondition

    def describe(self) -> str:
        return f"not({self.condition.describe()})"


TerminationCondition = Union[
    MaxRounds,
    MaxCost,
    TargetScore,
    FieldSet,
    FieldValue,
    Custom,
    NoImprovement,
    AllOf,
    AnyOf,
    Not,
]


def _describe_composite(kind: str, conditions: tuple[TerminationCondition, ...]) -> str:
    if not conditions:
        return f"{kind}() - empty, never terminates"
    return f"{kind}({', '.join(condition.describe() for condition in conditions)})"


def max_rounds(count: int) -> MaxRounds:
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ConfigurationError(
            "max_rounds count must be a positive integer",
            context={"count": count},
        )
    return MaxRounds(count=count)


def max_cost(budget: float) -> MaxCost:
    if not _is_finite_number(budget) or budget <= 0:
        raise ConfigurationError(
            "max_cost budget must be a positive finite number",
            context={"budget": budget},
        )
    return MaxCost(budget=float(budget))


def target_score(threshold: float) -> TargetScore:
    if not _is_finite_number(threshold) or not 0 <= threshold <= 100:
        raise ConfigurationError(
            "target_score threshold must be a finite number between 0 and 100",
            context={"threshold": threshold},
        )
    return TargetScore(threshold=float(threshold))


def field_set(path: str) -> FieldSet:
    return FieldSet(path=_require_path(path))


def field_value(path: str, expected: Any) -> FieldValue:
    return FieldValue(path=_require_path(path), expected=expected)


def custom(check: CustomCheck, description: str | None = None) -> Custom:
    if not callable(check):
        raise ConfigurationError("custom check must be callable")
    return Custom(check=check, description=description)


def no_improvement(consecutive_rounds: int, min_delta: float = 0.0) -> NoImprovement:
    if (
        isinstance(consecutive_rounds, bool)
        or not isinstance(consecutive_rounds, int)
        or consecutive_rounds < 1
    ):
        raise ConfigurationError(
            "no_improvement consecutive_rounds must be a positive integer",
            context={"consecutive_rounds": consecutive_rounds},
        )
    if not _is_finite_number(min_delta) or min_delta < 0:
        raise ConfigurationError(
            "no_improvement min_delta must be a non-negative finite number",
            context={"min_delta": min_delta},
        )
    return NoImprovement(consecutive_rounds=consecutive_rounds, min_delta=float(min_delta))


def and_(*conditions: TerminationCondition) -> AllOf:
    return AllOf(conditions=tuple(conditions))


def or_(*conditions: TerminationCondition) -> AnyOf:
    return AnyOf(conditions=tuple(conditions))


def not_(condition: TerminationCondition) -> Not:
    return Not(condition=condition)


def _is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _require_path(path: str) -> str:
    if not isinstance(path, str) or not path.strip():
        raise ConfigurationError("Field path must be a non-empty string", context={"path": path})
    return path.strip()
