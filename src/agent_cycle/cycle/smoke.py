"""Deterministic echo collaborators for end-to-end smoke cycles.

The echo agent renders its prompt, the keyword judge scores how many
required keywords the output mentions and the keyword improver adds one
missing keyword to the system prompt per round, so scores rise
predictably until every keyword is covered.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from agent_cycle.cycle.models import (
    AgentResponse,
    CaseResult,
    EvalCase,
    ImproveResult,
    JudgeContext,
    JudgeResult,
    PromptSnapshot,
    Suggestion,
    SuggestionType,
    Verdict,
)
from agent_cycle.validation.history import ValidationOutcome

SMOKE_KEYWORDS: tuple[str, ...] = ("concise", "accurate", "friendly")
SMOKE_AGENT_COST = 0.001
SMOKE_JUDGE_COST = 0.0005
SMOKE_IMPROVER_COST = 0.002


def smoke_prompt() -> PromptSnapshot:
    return PromptSnapshot(
        id="smoke-echo",
        version="1.0.0",
        system="You are an echo assistant.",
        user_template="Echo: {input}",
    )


def smoke_cases(keywords: Sequence[str] = SMOKE_KEYWORDS) -> list[EvalCase]:
    return [
        EvalCase(id=f"case-{name}", input=name, expected=tuple(keywords))
        for name in ("alpha", "beta", "gamma")
    ]


@dataclass(slots=True)
class EchoAgent:
    """Answer with the system prompt followed by the rendered user prompt."""

    prompt: PromptSnapshot

    async def execute(self, input: str) -> AgentResponse:  # noqa: A002
        text = f"{self.prompt.system} {self.prompt.render_user_prompt(input=input)}"
        return AgentResponse(
            output=text,
            cost=SMOKE_AGENT_COST,
            prompt_tokens=len(self.prompt.system.split()),
            completion_tokens=len(text.split()),
        )


class KeywordJudge:
    """Score an output by the share of expected keywords it mentions."""

    def evaluate(self, context: JudgeContext) -> JudgeResult:
        keywords = tuple(context.case.expected or ())
        text = str(context.output).lower()
        verdicts = tuple(
            Verdict(
                criterion=keyword,
                score=100.0 if keyword in text else 0.0,
                passed=keyword in text,
            )
            for keyword in keywords
        )
        score = sum(verdict.score for verdict in verdicts) / len(verdicts) if verdicts else 100.0
        return JudgeResult(
            verdicts=verdicts,
            overall_score=score,
            passed=all(verdict.passed for verdict in verdicts),
            cost=SMOKE_JUDGE_COST,
        )


class KeywordImprover:
    """Suggest adding the first keyword no output mentions yet."""

    def improve(self, prompt: PromptSnapshot, results: Sequence[CaseResult]) -> ImproveResult:
        missing = [
            verdict.criterion
            for result in results
            for verdict in result.verdicts
            if not verdict.passed
        ]
        if not missing:
            return ImproveResult(cost=SMOKE_IMPROVER_COST)
        keyword = missing[0]
        return ImproveResult(
            suggestions=(
                Suggestion(
                    type=SuggestionType.SYSTEM_PROMPT,
                    current_value=prompt.system,
                    suggested_value=f"{prompt.system} Be {keyword}.",
                    priority="high",
                    reasoning=f"Outputs never mention {keyword!r}.",
                    expected_improvement="Higher keyword coverage.",
                ),
            ),
            cost=SMOKE_IMPROVER_COST,
        )


def require_output(case: EvalCase, output: object) -> ValidationOutcome:
    """Reject blank agent outputs so the runner asks the agent again."""

    if str(output or "").strip():
        return ValidationOutcome.accept()
    return ValidationOutcome.reject(f"Empty output for case {case.id}")
