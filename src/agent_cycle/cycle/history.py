"""JSON history of improvement cycles, resumable by round snapshot."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from agent_cycle.cycle.models import PromptSnapshot, RoundRecord
from agent_cycle.errors import HistoryError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.1.0"

_REQUIRED_FIELDS = (
    "session_id",
    "started_at",
    "initial_prompt",
    "current_prompt",
    "rounds",
    "total_cost",
)


@dataclass(slots=True)
class HistoryRound:
    """Serialized view of one completed round."""

    round: int
    completed_at: str
    avg_score: float
    passed: int
    failed: int
    total_tests: int
    cost: dict[str, float]
    score_delta: float | None
    prompt_snapshot: PromptSnapshot
    prompt_version_after: str
    suggestions_generated: int = 0
    suggestions_applied: int = 0

    @classmethod
    def from_record(cls, record: RoundRecord) -> HistoryRound:
        summary = record.report.summary
        return cls(
            round=record.round,
            completed_at=record.completed_at.isoformat(),
            avg_score=summary.avg_score,
            passed=summary.passed,
            failed=summary.failed,
            total_tests=summary.total,
            cost={
                "agent": record.cost.agent,
                "judge": record.cost.judge,
                "improver": record.cost.improver,
                "total": record.cost.total,
            },
            score_delta=record.score_delta,
            prompt_snapshot=record.prompt_snapshot,
            prompt_version_after=record.prompt_version_after,
            suggestions_generated=len(record.suggestions_generated),
            suggestions_applied=record.suggestions_applied,
        )


@dataclass(slots=True)
class CycleHistory:
    """Append-only record of one improvement session."""

    session_id: str
    started_at: str
    initial_prompt: PromptSnapshot
    current_prompt: PromptSnapshot
    rounds: list[HistoryRound] = field(default_factory=list)
    total_cost: float = 0.0
    completed_at: str | None = None
    termination_reason: str | None = None
    schema_version: str = SCHEMA_VERSION

    @classmethod
    def start(cls, prompt: PromptSnapshot) -> CycleHistory:
        return cls(
            session_id=uuid4().hex,
            started_at=_utc_now(),
            initial_prompt=prompt,
            current_prompt=prompt,
        )

    @property
    def completed(self) -> bool:
        return self.completed_at is not None

    def add_round(self, record: RoundRecord, current_prompt: PromptSnapshot) -> None:
        if self.completed:
            raise HistoryError(
                "Cannot add round to completed session",
                context={"session_id": self.session_id},
            )
        self.rounds.append(HistoryRound.from_record(record))
        self.current_prompt = current_prompt
        self.total_cost += record.cost.total

    def complete(self, reason: str) -> None:
        self.completed_at = _utc_now()
        self.termination_reason = reason

    def snapshot_for_round(self, round_number: int) -> PromptSnapshot:
        """Return the prompt that was used for ``round_number``."""

        for entry in self.rounds:
            if entry.round == round_number:
                return entry.prompt_snapshot
        raise HistoryError(
            f"Round {round_number} not found in history",
            context={"session_id": self.session_id, "rounds": len(self.rounds)},
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class HistoryStore:
    """Persist one ``CycleHistory`` document at ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def save(self, history: CycleHistory) -> None:
        write_json(self.path, history.to_dict())
        logger.debug("Saved cycle history %s to %s", history.session_id, self.path)

    def load(self) -> CycleHistory:
        try:
            raw = load_json(self.path)
        except (OSError, TypeError, json.JSONDecodeError) as error:
            raise HistoryError(
                f"Cannot read cycle history at {self.path}",
                context={"path": str(self.path)},
            ) from error
        return parse_history(raw)

    def snapshot_for_round(self, round_number: int) -> PromptSnapshot:
        return self.load().snapshot_for_round(round_number)


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def parse_history(raw: dict[str, Any]) -> CycleHistory:
    """Validate a history document and build ``CycleHistory``."""

    schema_version = raw.get("schema_version")
    if schema_version != SCHEMA_VERSION:
        raise HistoryError(
            f"Unsupported schema version: {schema_version}",
            context={"schema_version": schema_version},
        )
    missing = [name for name in _REQUIRED_FIELDS if name not in raw]
    if missing:
        raise HistoryError(
            f"Invalid history: missing fields {', '.join(missing)}",
            context={"missing": missing},
        )
    raw_rounds = raw["rounds"]
    if not isinstance(raw_rounds, list):
        raise HistoryError("Invalid history: rounds must be an array")
    total_cost = raw["total_cost"]
    if isinstance(total_cost, bool) or not isinstance(total_cost, (int, float)):
        raise HistoryError("Invalid history: total_cost must be a number")

    completed_at = raw.get("completed_at")
    termination_reason = raw.get("termination_reason")
    return CycleHistory(
        session_id=_require_str(raw, "session_id"),
        started_at=_require_str(raw, "started_at"),
        initial_prompt=parse_prompt(raw["initial_prompt"]),
        current_prompt=parse_prompt(raw["current_prompt"]),
        rounds=[_parse_round(item) for item in raw_rounds],
        total_cost=float(total_cost),
        completed_at=str(completed_at) if completed_at is not None else None,
        termination_reason=str(termination_reason) if termination_reason is not None else None,
    )


def parse_prompt(raw: Any) -> PromptSnapshot:
    if not isinstance(raw, dict):
        raise HistoryError("Invalid prompt snapshot: expected an object")
    custom_fields = raw.get("custom_fields") or {}
    if not isinstance(custom_fields, dict) or not all(
        isinstance(value, str) for value in custom_fields.values()
    ):
        raise HistoryError("Invalid prompt snapshot: custom_fields must map to strings")
    return PromptSnapshot(
        id=_require_str(raw, "id"),
        version=_require_str(raw, "version"),
        system=_require_str(raw, "system"),
        user_template=_require_str(raw, "user_template"),
        custom_fields=dict(custom_fields),
    )


def _parse_round(raw: Any) -> HistoryRound:
    if not isinstance(raw, dict):
        raise HistoryError("Invalid history round: expected an object")
    try:
        score_delta = raw.get("score_delta")
        return HistoryRound(
            round=int(raw["round"]),
            completed_at=str(raw["completed_at"]),
            avg_score=float(raw["avg_score"]),
            passed=int(raw["passed"]),
            failed=int(raw["failed"]),
            total_tests=int(raw["total_tests"]),
            cost={str(key): float(value) for key, value in dict(raw["cost"]).items()},
            score_delta=float(score_delta) if score_delta is not None else None,
            prompt_snapshot=parse_prompt(raw["prompt_snapshot"]),
            prompt_version_after=str(raw["prompt_version_after"]),
            suggestions_generated=int(raw.get("suggestions_generated", 0)),
            suggestions_applied=int(raw.get("suggestions_applied", 0)),
        )
    except (KeyError, TypeError, ValueError) as error:
        raise HistoryError(
            f"Invalid history round: {error}",
            context={"round": raw.get("round")},
        ) from error


def _require_str(raw: dict[str, Any], name: str) -> str:
    value = raw.get(name)
    if not isinstance(value, str):
        raise HistoryError(f"Invalid history: {name} must be a string", context={"field": name})
    return value


def _utc_now() -> str:
    return datetime.now(tz=UTC).isoformat()
