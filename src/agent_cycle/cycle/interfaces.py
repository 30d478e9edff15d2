"""Collaborator protocols the round controller depends on."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

from agent_cycle.cycle.models import (
    CaseResult,
    EvalCase,
    ImproveResult,
    JudgeContext,
    JudgeResult,
    PromptSnapshot,
    RoundDecision,
    RoundReview,
)


class Agent(Protocol):
    """Work producer; may return a raw output or an ``AgentResponse``."""

    def execute(self, input: Any) -> Any: ...  # noqa: A002


class Judge(Protocol):
    def evaluate(self, context: JudgeContext) -> JudgeResult | Awaitable[JudgeResult]: ...


class Improver(Protocol):
    def improve(
        self,
        prompt: PromptSnapshot,
        results: Sequence[CaseResult],
    ) -> ImproveResult | Awaitable[ImproveResult]: ...


AgentFactory = Callable[[PromptSnapshot], Agent]
DecisionCallback = Callable[[RoundReview], RoundDecision | Awaitable[RoundDecision]]
OutputValidator = Callable[[EvalCase, Any], Any]
