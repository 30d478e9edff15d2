from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import UTC, datetime

import allure
import pytest

from agent_cycle.conditions.engine import (
    CycleContext,
    check_condition,
    check_termination,
    get_field_value,
)
from agent_cycle.conditions.models import (
    and_,
    custom,
    field_set,
    field_value,
    max_cost,
    max_rounds,
    no_improvement,
    not_,
    or_,
    target_score,
)
from agent_cycle.cycle.models import (
    EvalReport,
    PromptSnapshot,
    ReportSummary,
    RoundCost,
    RoundRecord,
)
from agent_cycle.errors import ConfigurationError

pytestmark = [
    allure.epic("Improvement Cycle"),
    allure.feature("Termination Conditions"),
]

_PROMPT = PromptSnapshot(id="p", version="1.0.0", system="s", user_template="{input}")
_EMPTY_REPORT = EvalReport(
    results=(),
    summary=ReportSummary(total=0, passed=0, failed=0, avg_score=0),
)


def _record(round_number: int, score_delta: float | None) -> RoundRecord:
    return RoundRecord(
        round=round_number,
        report=_EMPTY_REPORT,
        cost=RoundCost(),
        score_delta=score_delta,
        prompt_snapshot=_PROMPT,
        prompt_version_after="1.0.0",
        completed_at=datetime.now(tz=UTC),
    )


def _ctx(**overrides) -> CycleContext:
    values = {"current_round": 1, "total_cost": 0.0, "latest_score": 50.0}
    values.update(overrides)
    return CycleContext(**values)


async def test_max_rounds_terminates_at_count() -> None:
    before = await check_condition(max_rounds(3), _ctx(current_round=2))
    reached = await check_condition(max_rounds(3), _ctx(current_round=3))

    assert not before.terminated
    assert before.reason == "Round 2 of 3"
    assert reached.terminated
    assert reached.reason == "Maximum rounds reached (3)"
    assert reached.matched_condition == max_rounds(3)


async def test_max_cost_compares_inclusive_budget() -> None:
    check = await check_condition(max_cost(1.5), _ctx(total_cost=1.5))

    assert check.terminated
    assert check.reason == "Cost limit exceeded ($1.50 >= $1.50)"


async def test_target_score_reports_current_score() -> None:
    met = await check_condition(target_score(80), _ctx(latest_score=85.0))
    missed = await check_condition(target_score(80), _ctx(latest_score=79.0))
    unscored = await check_condition(target_score(80), _ctx(latest_score=None))

    assert met.terminated
    assert met.reason == "Target score 80.0 reached (current: 85.0)"
    assert not missed.terminated
    assert not unscored.terminated


async def test_field_conditions_walk_dotted_paths() -> None:
    fields = {"result": {"verdict": "ship", "items": [{"id": 7}]}, "empty": None}
    ctx = _ctx(fields=fields)

    assert (await check_condition(field_set("result.verdict"), ctx)).terminated
    assert not (await check_condition(field_set("empty"), ctx)).terminated
    assert not (await check_condition(field_set("result.missing"), ctx)).terminated
    assert (await check_condition(field_value("result.items.0.id", 7), ctx)).terminated
    assert not (await check_condition(field_value("result.verdict", "hold"), ctx)).terminated


def test_get_field_value_reads_attributes_and_indexes() -> None:
    @dataclass
    class Summary:
        avg_score: float

    source = {"summary": Summary(avg_score=91.0), "rows": ["a", "b"]}

    assert get_field_value(source, "summary.avg_score") == 91.0
    assert get_field_value(source, "rows.1") == "b"
    assert get_field_value(source, "rows.9") is None
    assert get_field_value(source, "rows.x") is None
    assert get_field_value(None, "anything") is None


async def test_custom_condition_supports_async_checks() -> None:
    async def _check(ctx: CycleContext) -> bool:
        return ctx.current_round >= 2

    condition = custom(_check, "two rounds done")

    assert not (await check_condition(condition, _ctx(current_round=1))).terminated
    check = await check_condition(condition, _ctx(current_round=2))
    assert check.terminated
    assert check.reason == "two rounds done met"


async def test_raising_custom_check_does_not_terminate() -> None:
    def _check(ctx: CycleContext) -> bool:
        raise RuntimeError("judge offline")

    check = await check_condition(custom(_check, "flaky"), _ctx())

    assert not check.terminated
    assert check.reason == "flaky check failed: judge offline"


async def test_no_improvement_counts_trailing_stalled_rounds() -> None:
    history = (_record(1, None), _record(2, 5.0), _record(3, 0.5), _record(4, -1.0))
    condition = no_improvement(2, min_delta=1.0)

    check = await check_condition(condition, _ctx(current_round=4, history=history))
    short = await check_condition(no_improvement(3, min_delta=1.0), _ctx(history=history))

    assert check.terminated
    assert check.reason == "No improvement for 2 consecutive rounds"
    assert not short.terminated
    assert short.reason == "2 rounds without improvement (need 3)"


async def test_no_improvement_stops_at_first_round() -> None:
    history = (_record(1, None), _record(2, 0.0))

    check = await check_condition(no_improvement(2), _ctx(history=history))

    assert not check.terminated
    assert check.reason == "1 round without improvement (need 2)"


async def test_empty_composites_never_terminate() -> None:
    ctx = _ctx(current_round=100, total_cost=1e9, latest_score=100.0)

    empty_and = await check_condition(and_(), ctx)
    empty_or = await check_condition(or_(), ctx)

    assert not empty_and.terminated
    assert not empty_or.terminated
    assert and_().describe() == "and() - empty, never terminates"
    assert or_().describe() == "or() - empty, never terminates"


async def test_and_short_circuits_on_first_non_terminated_child() -> None:
    calls: list[str] = []

    def _tracking(name: str, result: bool):
        def _check(ctx: CycleContext) -> bool:
            calls.append(name)
            return result

        return custom(_check, name)

    check = await check_condition(
        and_(_tracking("a", True), _tracking("b", False), _tracking("c", True)),
        _ctx(),
    )

    assert not check.terminated
    assert calls == ["a", "b"]


async def test_or_short_circuits_on_first_terminated_child() -> None:
    calls: list[str] = []

    def _tracking(name: str, result: bool):
        def _check(ctx: CycleContext) -> bool:
            calls.append(name)
            return result

        return custom(_check, name)

    check = await check_condition(
        or_(_tracking("a", False), _tracking("b", True), _tracking("c", True)),
        _ctx(),
    )

    assert check.terminated
    assert calls == ["a", "b"]


async def test_not_inverts_child() -> None:
    ctx = _ctx(current_round=1)

    assert (await check_condition(not_(max_rounds(5)), ctx)).terminated
    assert not (await check_condition(not_(max_rounds(1)), ctx)).terminated


async def test_check_termination_first_match_wins() -> None:
    ctx = _ctx(current_round=3, total_cost=10.0)

    check = await check_termination([target_score(99), max_rounds(3), max_cost(5)], ctx)

    assert check.terminated
    assert check.matched_condition == max_rounds(3)


async def test_check_termination_handles_empty_and_unmet_lists() -> None:
    empty = await check_termination([], _ctx())
    unmet = await check_termination([max_rounds(10)], _ctx())

    assert not empty.terminated
    assert empty.reason == "No termination conditions specified"
    assert not unmet.terminated
    assert unmet.reason == "No termination conditions met"


@pytest.mark.parametrize(
    ("factory", "args"),
    [
        (max_rounds, (0,)),
        (max_rounds, (2.5,)),
        (max_cost, (0,)),
        (max_cost, (math.inf,)),
        (target_score, (101,)),
        (target_score, (-1,)),
        (target_score, (math.nan,)),
        (no_improvement, (0,)),
        (no_improvement, (2, -0.1)),
        (field_set, ("",)),
        (field_value, ("  ", 1)),
    ],
)
def test_factories_reject_invalid_parameters(factory, args) -> None:
    with pytest.raises(ConfigurationError):
        factory(*args)
