"""Round controller: evaluate, judge, check termination, improve, repeat."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from agent_cycle.concurrency import ConcurrencyLimiter
from agent_cycle.conditions.engine import CycleContext, TerminationCheck, check_termination
from agent_cycle.conditions.models import TerminationCondition
from agent_cycle.config import VERSION_BUMPS
from agent_cycle.cycle.history import CycleHistory, HistoryStore
from agent_cycle.cycle.interfaces import (
    AgentFactory,
    DecisionCallback,
    Improver,
    Judge,
    OutputValidator,
)
from agent_cycle.cycle.models import (
    CycleResult,
    DecisionAction,
    EvalCase,
    EvalReport,
    ImproveResult,
    PromptSnapshot,
    RoundCost,
    RoundDecision,
    RoundRecord,
    RoundReview,
)
from agent_cycle.cycle.runner import build_report, execute_cases, judge_cases
from agent_cycle.cycle.suggestions import apply_suggestions
from agent_cycle.errors import (
    AgentCycleError,
    CollaboratorError,
    ConfigurationError,
    OperationCancelledError,
)
from agent_cycle.execution.cancellation import CancellationToken
from agent_cycle.execution.observer import ExecutionObserver
from agent_cycle.execution.shared import maybe_await
from agent_cycle.validation.loop import DEFAULT_MAX_ATTEMPTS

logger = logging.getLogger(__name__)

CANCELED_REASON = "Cycle canceled"
STOPPED_REASON = "Stopped by decision"


@dataclass(slots=True)
class _CycleState:
    prompt: PromptSnapshot
    current_round: int = 0
    total_cost: float = 0.0
    previous_scores: list[float] = field(default_factory=list)
    rounds: list[RoundRecord] = field(default_factory=list)


@dataclass(slots=True)
class _ScoredRound:
    report: EvalReport
    agent_cost: float
    judge_cost: float
    score_delta: float | None


class RoundController:
    """Drive an improvement cycle until a termination condition holds.

    Each round runs every eval case through its own execution host, scores
    the outputs with the judge and checks ``terminate_when`` (OR semantics).
    When no condition holds the improver proposes suggestions, ``decide``
    picks continue, stop or rollback, and the next round uses the
    resulting prompt. ``safety_max_rounds`` bounds cycles whose conditions
    never hold.
    ``validate_output`` re-runs an agent call whose output it rejects, at most
    ``validation_max_attempts`` times per case.
    """

    def __init__(  # noqa: PLR0913
        self,
        agent_factory: AgentFactory,
        judge: Judge,
        test_cases: Sequence[EvalCase],
        initial_prompt: PromptSnapshot,
        terminate_when: Sequence[TerminationCondition],
        *,
        improver: Improver | None = None,
        concurrency: int = 1,
        safety_max_rounds: int = 50,
        decide: DecisionCallback | None = None,
        history: HistoryStore | None = None,
        auto_save: bool = True,
        token: CancellationToken | None = None,
        observer: ExecutionObserver | None = None,
        version_bump: str = "patch",
        validate_output: OutputValidator | None = None,
        validation_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        validation_retry_delay: float = 0.0,
    ) -> None:
        if not terminate_when:
            raise ConfigurationError(
                "At least one termination condition is required",
                context={"terminate_when": []},
            )
        if not test_cases:
            raise ConfigurationError("At least one test case is required")
        if isinstance(safety_max_rounds, bool) or not isinstance(safety_max_rounds, int) or (
            safety_max_rounds < 1
        ):
            raise ConfigurationError(
                "safety_max_rounds must be a positive integer",
                context={"safety_max_rounds": safety_max_rounds},
            )
        if version_bump not in VERSION_BUMPS:
            raise ConfigurationError(
                f"Unsupported version bump: {version_bump!r}",
                context={"allowed": list(VERSION_BUMPS)},
            )
        self._limiter = ConcurrencyLimiter(concurrency)
        self._agent_factory = agent_factory
        self._judge = judge
        self._improver = improver
        self._test_cases = tuple(test_cases)
        self._initial_prompt = initial_prompt
        self._terminate_when = tuple(terminate_when)
        self._safety_max_rounds = safety_max_rounds
        self._decide = decide
        self._store = history
        self._auto_save = auto_save
        self._token = token or CancellationToken()
        self._observer = observer
        self._version_bump = version_bump
        self._validate_output = validate_output
        self._validation_max_attempts = validation_max_attempts
        self._validation_retry_delay = validation_retry_delay

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def history_store(self) -> HistoryStore | None:
        return self._store

    def cancel(self, reason: str | None = None) -> None:
        self._token.cancel(reason or CANCELED_REASON)

    async def run(self) -> CycleResult:
        state = _CycleState(prompt=self._initial_prompt)
        history = CycleHistory.start(self._initial_prompt) if self._store is not None else None

        try:
            reason = await self._run_rounds(state, history)
        except OperationCancelledError:
            return self._finish(state, history, CANCELED_REASON, canceled=True)
        except Exception as error:
            message = error.message if isinstance(error, AgentCycleError) else str(error)
            logger.error("Improvement cycle failed in round %s: %s", state.current_round, message)
            if history is not None:
                history.complete(f"Error: {message}")
                self._save(history)
            raise

        return self._finish(state, history, reason, canceled=False)

    async def _run_rounds(  # noqa: C901
        self,
        state: _CycleState,
        history: CycleHistory | None,
    ) -> str:
        while True:
            self._token.raise_if_cancelled()
            if state.current_round >= self._safety_max_rounds:
                return f"Safety limit reached ({self._safety_max_rounds} rounds)"

            state.current_round += 1
            snapshot = state.prompt
            scored = await self._score_round(state, snapshot)
            score = scored.report.summary.avg_score

            record = RoundRecord(
                round=state.current_round,
                report=scored.report,
                cost=RoundCost(agent=scored.agent_cost, judge=scored.judge_cost),
                score_delta=scored.score_delta,
                prompt_snapshot=snapshot,
                prompt_version_after=snapshot.version,
                completed_at=datetime.now(tz=UTC),
            )
            context = CycleContext(
                current_round=state.current_round,
                total_cost=state.total_cost + record.cost.total,
                latest_score=score,
                previous_scores=list(state.previous_scores),
                history=(*state.rounds, record),
                fields=scored.report,
            )
            check = await check_termination(self._terminate_when, context)
            if check.terminated:
                self._commit(state, history, record, state.prompt)
                return check.reason

            self._token.raise_if_cancelled()
            improvement = await self._improve(state, snapshot, scored.report)
            record = replace(
                record,
                cost=replace(record.cost, improver=improvement.cost),
                suggestions_generated=tuple(improvement.suggestions),
            )
            decision = await self._decision(record, snapshot, improvement, check, context)

            if decision.action is DecisionAction.STOP:
                self._commit(state, history, record, state.prompt)
                return STOPPED_REASON

            if decision.action is DecisionAction.ROLLBACK:
                restored = self._rollback_target(state, decision.rollback_to_round)
                record = replace(record, prompt_version_after=restored.version)
                self._commit(state, history, record, restored)
                state.prompt = restored
                state.previous_scores = state.previous_scores[: decision.rollback_to_round - 1]
                logger.info("Rolled back to the prompt of round %s", decision.rollback_to_round)
                continue

            approved = (
                decision.approved if decision.approved is not None else improvement.suggestions
            )
            applied = apply_suggestions(snapshot, approved, self._version_bump)
            record = replace(
                record,
                suggestions_applied=applied.applied_count,
                prompt_version_after=applied.prompt.version,
            )
            self._commit(state, history, record, applied.prompt)
            state.prompt = applied.prompt
            state.previous_scores.append(score)

    async def _score_round(self, state: _CycleState, snapshot: PromptSnapshot) -> _ScoredRound:
        agent = self._agent_factory(snapshot)
        executions = await execute_cases(
            agent,
            self._test_cases,
            limiter=self._limiter,
            token=self._token,
            observer=self._observer,
            validate=self._validate_output,
            max_attempts=self._validation_max_attempts,
            retry_delay=self._validation_retry_delay,
        )
        self._token.raise_if_cancelled()
        results = await judge_cases(
            self._judge,
            executions,
            prompt=snapshot,
            round_number=state.current_round,
            token=self._token,
        )
        report = build_report(results)
        score = report.summary.avg_score
        return _ScoredRound(
            report=report,
            agent_cost=sum(result.summary.total_cost for result in results),
            judge_cost=sum(result.judge_cost for result in results),
            score_delta=score - state.previous_scores[-1] if state.previous_scores else None,
        )

    async def _improve(
        self,
        state: _CycleState,
        snapshot: PromptSnapshot,
        report: EvalReport,
    ) -> ImproveResult:
        if self._improver is None:
            return ImproveResult()
        try:
            return await maybe_await(self._improver.improve(snapshot, report.results))
        except Exception as error:
            raise CollaboratorError(
                f"Improver failed: {error}",
                collaborator="improver",
                round_number=state.current_round,
            ) from error

    async def _decision(
        self,
        record: RoundRecord,
        snapshot: PromptSnapshot,
        improvement: ImproveResult,
        check: TerminationCheck,
        context: CycleContext,
    ) -> RoundDecision:
        if self._decide is None:
            return RoundDecision.proceed()
        review = RoundReview(
            round=record.round,
            report=record.report,
            cost=record.cost,
            score_delta=record.score_delta,
            prompt=snapshot,
            pending_suggestions=tuple(improvement.suggestions),
            termination=check,
            context=context,
        )
        return await maybe_await(self._decide(review))

    def _rollback_target(self, state: _CycleState, to_round: int | None) -> PromptSnapshot:
        if to_round is None or not 1 <= to_round <= len(state.rounds) + 1:
            raise ConfigurationError(
                f"Cannot rollback to round {to_round}: round not found",
                context={"completed_rounds": len(state.rounds) + 1},
            )
        if to_round == len(state.rounds) + 1:
            return state.prompt
        return state.rounds[to_round - 1].prompt_snapshot

    def _commit(
        self,
        state: _CycleState,
        history: CycleHistory | None,
        record: RoundRecord,
        next_prompt: PromptSnapshot,
    ) -> None:
        state.rounds.append(record)
        state.total_cost += record.cost.total
        logger.info(
            "round=%s avg_score=%.2f delta=%s cost=%.6f",
            record.round,
            record.report.summary.avg_score,
            "n/a" if record.score_delta is None else f"{record.score_delta:+.2f}",
            record.cost.total,
        )
        if history is not None:
            history.add_round(record, next_prompt)
            if self._auto_save:
                self._save(history)

    def _finish(
        self,
        state: _CycleState,
        history: CycleHistory | None,
        reason: str,
        *,
        canceled: bool,
    ) -> CycleResult:
        logger.info("Improvement cycle finished after %s rounds: %s", len(state.rounds), reason)
        if history is not None:
            history.complete(reason)
            self._save(history)
        return CycleResult(
            rounds=tuple(state.rounds),
            total_cost=state.total_cost,
            termination_reason=reason,
            final_prompt=state.prompt,
            canceled=canceled,
            history=history,
        )

    def _save(self, history: CycleHistory) -> None:
        if self._store is not None:
            self._store.save(history)
