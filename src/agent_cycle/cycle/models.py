"""Domain models for improvement cycles: prompts, evaluations, rounds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from agent_cycle.execution.models import ExecutionSummary

if TYPE_CHECKING:
    from agent_cycle.conditions.engine import CycleContext, TerminationCheck
    from agent_cycle.cycle.history import CycleHistory


@dataclass(frozen=True, slots=True)
class PromptSnapshot:
    """Serializable prompt state; a new snapshot is produced per applied change."""

    id: str
    version: str
    system: str
    user_template: str
    custom_fields: dict[str, str] = field(default_factory=dict)

    def render_user_prompt(self, **values: Any) -> str:
        return self.user_template.format(**values)


@dataclass(frozen=True, slots=True)
class AgentResponse:
    """Agent output with the usage the agent reported for producing it."""

    output: Any
    cost: float = 0.0
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass(frozen=True, slots=True)
class EvalCase:
    """One input the agent is evaluated on each round."""

    id: str
    input: Any
    expected: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Verdict:
    criterion: str
    score: float
    passed: bool
    reasoning: str = ""


@dataclass(frozen=True, slots=True)
class JudgeContext:
    """Everything a judge sees for one successful agent output."""

    case: EvalCase
    output: Any
    prompt: PromptSnapshot
    round_number: int


@dataclass(frozen=True, slots=True)
class JudgeResult:
    verdicts: tuple[Verdict, ...]
    overall_score: float
    passed: bool
    cost: float = 0.0


@dataclass(frozen=True, slots=True)
class CaseResult:
    """Outcome of one eval case; failed executions score 0 and do not pass."""

    case: EvalCase
    summary: ExecutionSummary
    output: Any = None
    error: BaseException | None = None
    verdicts: tuple[Verdict, ...] = ()
    overall_score: float = 0.0
    passed: bool = False
    judge_cost: float = 0.0


@dataclass(frozen=True, slots=True)
class ReportSummary:
    total: int
    passed: int
    failed: int
    avg_score: float


@dataclass(frozen=True, slots=True)
class EvalReport:
    results: tuple[CaseResult, ...]
    summary: ReportSummary


class SuggestionType(str, Enum):
    """Prompt part a suggestion rewrites."""

    SYSTEM_PROMPT = "system_prompt"
    USER_PROMPT = "user_prompt"
    PARAMETERS = "parameters"


@dataclass(frozen=True, slots=True)
class Suggestion:
    type: SuggestionType
    current_value: str
    suggested_value: str
    priority: str = "medium"
    reasoning: str = ""
    expected_improvement: str = ""


@dataclass(frozen=True, slots=True)
class ImproveResult:
    suggestions: tuple[Suggestion, ...] = ()
    cost: float = 0.0


@dataclass(frozen=True, slots=True)
class RoundCost:
    agent: float = 0.0
    judge: float = 0.0
    improver: float = 0.0

    @property
    def total(self) -> float:
        return self.agent + self.judge + self.improver


@dataclass(frozen=True, slots=True)
class RoundRecord:
    """Completed round; ``score_delta`` is None for the first scored round."""

    round: int
    report: EvalReport
    cost: RoundCost
    score_delta: float | None
    prompt_snapshot: PromptSnapshot
    prompt_version_after: str
    completed_at: datetime
    suggestions_generated: tuple[Suggestion, ...] = ()
    suggestions_applied: int = 0


class DecisionAction(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"
    ROLLBACK = "rollback"


@dataclass(frozen=True, slots=True)
class RoundDecision:
    """What to do after a round that no termination condition stopped.

    ``approved`` None means every generated suggestion is applied.
    """

    action: DecisionAction
    approved: tuple[Suggestion, ...] | None = None
    rollback_to_round: int | None = None

    @classmethod
    def proceed(
        cls,
        approved: tuple[Suggestion, ...] | list[Suggestion] | None = None,
    ) -> RoundDecision:
        return cls(
            action=DecisionAction.CONTINUE,
            approved=tuple(approved) if approved is not None else None,
        )

    @classmethod
    def stop(cls) -> RoundDecision:
        return cls(action=DecisionAction.STOP)

    @classmethod
    def rollback(cls, to_round: int) -> RoundDecision:
        return cls(action=DecisionAction.ROLLBACK, rollback_to_round=to_round)


@dataclass(frozen=True, slots=True)
class RoundReview:
    """State handed to the decision callback after each non-final round."""

    round: int
    report: EvalReport
    cost: RoundCost
    score_delta: float | None
    prompt: PromptSnapshot
    pending_suggestions: tuple[Suggestion, ...]
    termination: TerminationCheck
    context: CycleContext


@dataclass(frozen=True, slots=True)
class CycleResult:
    rounds: tuple[RoundRecord, ...]
    total_cost: float
    termination_reason: str
    final_prompt: PromptSnapshot
    canceled: bool = False
    history: CycleHistory | None = None
