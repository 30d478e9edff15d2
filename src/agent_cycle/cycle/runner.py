"""Run eval cases through execution hosts and score them with the judge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from agent_cycle.concurrency import ConcurrencyLimiter
from agent_cycle.cycle.interfaces import Agent, Judge, OutputValidator
from agent_cycle.cycle.models import (
    AgentResponse,
    CaseResult,
    EvalCase,
    EvalReport,
    JudgeContext,
    JudgeResult,
    PromptSnapshot,
    ReportSummary,
)
from agent_cycle.errors import CollaboratorError
from agent_cycle.execution.cancellation import CancellationToken
from agent_cycle.execution.models import ExecutionResult
from agent_cycle.execution.observer import ExecutionObserver
from agent_cycle.execution.session import ExecutionSession
from agent_cycle.execution.shared import maybe_await
from agent_cycle.execution.simple_host import SimpleExecutionHost
from agent_cycle.validation.history import ValidationAttempt, ValidationHistory
from agent_cycle.validation.loop import DEFAULT_MAX_ATTEMPTS, with_validation

logger = logging.getLogger(__name__)


async def execute_cases(
    agent: Agent,
    cases: Sequence[EvalCase],
    *,
    limiter: ConcurrencyLimiter,
    token: CancellationToken | None = None,
    observer: ExecutionObserver | None = None,
    validate: OutputValidator | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay: float = 0.0,
) -> list[tuple[EvalCase, ExecutionResult[Any]]]:
    """Execute every case in its own host; results keep the input order.

    With ``validate`` each case re-runs the agent until the validator accepts
    its output or ``max_attempts`` runs were rejected, in which case the case
    fails with ``ValidationExhaustedError``. Every attempt is billed.
    """

    async def _run_case(case: EvalCase) -> tuple[EvalCase, ExecutionResult[Any]]:
        async def _call_agent(session: ExecutionSession) -> Any:
            session.checkpoint()
            raw = await maybe_await(agent.execute(case.input))
            response = raw if isinstance(raw, AgentResponse) else AgentResponse(output=raw)
            session.record_call(
                "agent",
                cost=response.cost,
                prompt_tokens=response.prompt_tokens,
                completion_tokens=response.completion_tokens,
            )
            return response.output

        async def _work(session: ExecutionSession) -> Any:
            session.set_metadata("case_id", case.id)
            if validate is None:
                return await _call_agent(session)

            async def _check(output: Any, history: ValidationHistory[Any]) -> Any:
                return await maybe_await(validate(case, output))

            def _record(attempt: ValidationAttempt[Any]) -> None:
                session.set_metadata("validation_attempts", attempt.attempt)

            return await with_validation(
                lambda history: _call_agent(session),
                _check,
                max_attempts=max_attempts,
                token=session.token,
                retry_delay=retry_delay,
                on_attempt=_record,
            )

        async with limiter:
            host: SimpleExecutionHost[Any] = SimpleExecutionHost(
                _work,
                name=f"case:{case.id}",
                token=token,
                observer=observer,
            )
            async with host:
                return case, await host.result()

    return list(await asyncio.gather(*(_run_case(case) for case in cases)))


async def judge_cases(
    judge: Judge,
    executions: Sequence[tuple[EvalCase, ExecutionResult[Any]]],
    *,
    prompt: PromptSnapshot,
    round_number: int,
    token: CancellationToken | None = None,
) -> list[CaseResult]:
    """Score successful outputs; failed executions keep score 0."""

    results: list[CaseResult] = []
    for case, execution in executions:
        if not execution.succeeded:
            results.append(
                CaseResult(
                    case=case,
                    summary=execution.summary,
                    error=execution.error,
                ),
            )
            continue

        if token is not None:
            token.raise_if_cancelled()
        context = JudgeContext(
            case=case,
            output=execution.value,
            prompt=prompt,
            round_number=round_number,
        )
        try:
            verdict: JudgeResult = await maybe_await(judge.evaluate(context))
        except Exception as error:
            raise CollaboratorError(
                f"Judge failed on case {case.id}: {error}",
                collaborator="judge",
                round_number=round_number,
                context={"case_id": case.id},
            ) from error
        results.append(
            CaseResult(
                case=case,
                summary=execution.summary,
                output=execution.value,
                verdicts=tuple(verdict.verdicts),
                overall_score=verdict.overall_score,
                passed=verdict.passed,
                judge_cost=verdict.cost,
            ),
        )
    return results


def build_report(results: Sequence[CaseResult]) -> EvalReport:
    total = len(results)
    passed = sum(1 for result in results if result.passed)
    avg_score = sum(result.overall_score for result in results) / total if total else 0.0
    return EvalReport(
        results=tuple(results),
        summary=ReportSummary(
            total=total,
            passed=passed,
            failed=total - passed,
            avg_score=avg_score,
        ),
    )
