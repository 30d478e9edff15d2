"""Controllers for improvement-cycle CLI commands."""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

from agent_cycle.conditions.models import TerminationCondition, max_rounds, target_score
from agent_cycle.config import Settings
from agent_cycle.cycle.controller import RoundController
from agent_cycle.cycle.history import HistoryStore, write_json
from agent_cycle.cycle.models import CycleResult
from agent_cycle.cycle.smoke import (
    EchoAgent,
    KeywordImprover,
    KeywordJudge,
    require_output,
    smoke_cases,
    smoke_prompt,
)
from agent_cycle.errors import AgentCycleError


@dataclass(slots=True)
class CycleSmokeCommand:
    """CLI input for an echo improvement cycle."""

    rounds: int
    target_score: float | None
    concurrency: int | None
    history_path: Path | None
    use_prefect: bool = False


@dataclass(slots=True)
class HistoryShowCommand:
    """CLI input for printing a saved history."""

    path: Path


@dataclass(slots=True)
class HistoryRollbackCommand:
    """CLI input for extracting the prompt of one recorded round."""

    path: Path
    round_number: int
    output: Path | None


@dataclass(slots=True)
class CycleSmokeResult:
    """Smoke-cycle report to render in CLI."""

    lines: list[str]
    success: bool


class CycleCliController:
    """Coordinates smoke cycles and history inspection CLI operations."""

    def smoke(self, command: CycleSmokeCommand) -> CycleSmokeResult:
        settings = Settings.from_env()
        try:
            settings.validate()
            controller = self._smoke_controller(command, settings)
            result = asyncio.run(self._run(controller, use_prefect=command.use_prefect))
        except AgentCycleError as error:
            return CycleSmokeResult(
                lines=["Improvement cycle smoke:", f"error={error.code.value} {error.message}"],
                success=False,
            )

        lines = ["Improvement cycle smoke:"]
        for record in result.rounds:
            delta = "-" if record.score_delta is None else f"{record.score_delta:+.2f}"
            lines.append(
                f"  round={record.round} avg_score={record.report.summary.avg_score:.2f} "
                f"delta={delta} passed={record.report.summary.passed}/"
                f"{record.report.summary.total} cost={record.cost.total:.4f} "
                f"version={record.prompt_version_after}",
            )
        lines.append(f"total_cost={result.total_cost:.4f}")
        lines.append(f"final_prompt_version={result.final_prompt.version}")
        lines.append(f"termination_reason={result.termination_reason}")
        if controller.history_store is not None:
            lines.append(f"history={controller.history_store.path}")
        success = not result.canceled
        lines.append(f"Smoke status: {'passed' if success else 'failed'}")
        return CycleSmokeResult(lines=lines, success=success)

    def show_history(self, command: HistoryShowCommand) -> list[str]:
        history = HistoryStore(command.path).load()
        lines = [
            f"Session: {history.session_id}",
            f"Started: {history.started_at}",
            f"Completed: {history.completed_at or '-'}",
            f"Termination: {history.termination_reason or '-'}",
            f"Prompt: {history.initial_prompt.version} -> {history.current_prompt.version}",
            f"Total cost: {history.total_cost:.4f}",
            "Rounds:",
        ]
        if not history.rounds:
            lines.append("  (none)")
        for entry in history.rounds:
            delta = "-" if entry.score_delta is None else f"{entry.score_delta:+.2f}"
            lines.append(
                f"  round={entry.round} avg_score={entry.avg_score:.2f} delta={delta} "
                f"passed={entry.passed}/{entry.total_tests} "
                f"cost={entry.cost.get('total', 0.0):.4f} "
                f"prompt={entry.prompt_snapshot.version}->{entry.prompt_version_after} "
                f"suggestions={entry.suggestions_applied}/{entry.suggestions_generated}",
            )
        return lines

    def rollback(self, command: HistoryRollbackCommand) -> list[str]:
        snapshot = HistoryStore(command.path).snapshot_for_round(command.round_number)
        payload = asdict(snapshot)
        if command.output is not None:
            write_json(command.output, payload)
            return [
                f"Prompt of round {command.round_number} (version {snapshot.version}) "
                f"written to {command.output}",
            ]
        return json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True).splitlines()

    def _smoke_controller(self, command: CycleSmokeCommand, settings: Settings) -> RoundController:
        conditions: list[TerminationCondition] = [max_rounds(command.rounds)]
        if command.target_score is not None:
            conditions.append(target_score(command.target_score))

        history_path = command.history_path
        if history_path is None and settings.cycle.auto_save:
            stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%S")
            history_path = settings.cycle.history_dir / f"smoke-{stamp}.json"

        return RoundController(
            agent_factory=EchoAgent,
            judge=KeywordJudge(),
            test_cases=smoke_cases(),
            initial_prompt=smoke_prompt(),
            terminate_when=conditions,
            improver=KeywordImprover(),
            concurrency=command.concurrency or settings.execution.concurrency,
            safety_max_rounds=settings.cycle.safety_max_rounds,
            history=HistoryStore(history_path) if history_path is not None else None,
            auto_save=settings.cycle.auto_save,
            version_bump=settings.cycle.version_bump,
            validate_output=require_output,
            validation_max_attempts=settings.execution.validation_max_attempts,
            validation_retry_delay=settings.execution.validation_retry_delay_seconds,
        )

    async def _run(self, controller: RoundController, *, use_prefect: bool) -> CycleResult:
        if use_prefect:
            from agent_cycle.cycle.prefect_flow import improvement_cycle_flow

            return await improvement_cycle_flow(controller=controller)
        return await controller.run()

