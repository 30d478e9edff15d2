from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

from agent_cycle.main import agent_cycle

pytestmark = [
    allure.epic("Improvement Cycle"),
    allure.feature("CLI"),
]


def _run_smoke(tmp_path: Path, *extra: str):
    history_path = tmp_path / "history.json"
    runner = CliRunner()
    result = runner.invoke(
        agent_cycle,
        ["cycle", "smoke", "--history-path", str(history_path), *extra],
    )
    return result, history_path


def test_cycle_smoke_runs_echo_cycle_and_saves_history(tmp_path: Path) -> None:
    result, history_path = _run_smoke(tmp_path, "--rounds", "2")

    assert result.exit_code == 0, result.output
    assert "Improvement cycle smoke:" in result.output
    assert "round=1 avg_score=0.00 delta=- passed=0/3" in result.output
    assert "round=2 avg_score=33.33 delta=+33.33" in result.output
    assert "final_prompt_version=1.0.1" in result.output
    assert "termination_reason=Maximum rounds reached (2)" in result.output
    assert f"history={history_path}" in result.output
    assert "Smoke status: passed" in result.output
    assert history_path.exists()


def test_cycle_smoke_stops_at_target_score(tmp_path: Path) -> None:
    result, _ = _run_smoke(
        tmp_path,
        "--rounds",
        "10",
        "--target-score",
        "60",
        "--concurrency",
        "3",
    )

    assert result.exit_code == 0, result.output
    assert "termination_reason=Target score 60.0 reached (current: 66.66" in result.output
    assert "round=4" not in result.output


def test_cycle_smoke_rejects_invalid_rounds(tmp_path: Path) -> None:
    result, history_path = _run_smoke(tmp_path, "--rounds", "0")

    assert result.exit_code != 0
    assert not history_path.exists()


def test_cycle_smoke_reports_invalid_settings(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("AGENT_CYCLE_VERSION_BUMP", "huge")

    result, _ = _run_smoke(tmp_path)

    assert result.exit_code == 1
    assert "error=INVALID_CONFIG Unsupported AGENT_CYCLE_VERSION_BUMP" in result.output
    assert "Improvement cycle smoke failed." in result.output


def test_invalid_log_level_is_rejected_before_commands_run(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("AGENT_CYCLE_LOG_LEVEL", "chatty")

    result, history_path = _run_smoke(tmp_path)

    assert result.exit_code == 1
    assert "Unsupported AGENT_CYCLE_LOG_LEVEL" in result.output
    assert not history_path.exists()


def test_history_show_lists_rounds(tmp_path: Path) -> None:
    _, history_path = _run_smoke(tmp_path, "--rounds", "3")

    result = CliRunner().invoke(agent_cycle, ["history", "show", str(history_path)])

    assert result.exit_code == 0, result.output
    assert "Termination: Maximum rounds reached (3)" in result.output
    assert "Prompt: 1.0.0 -> 1.0.2" in result.output
    assert "round=1 avg_score=0.00 delta=- passed=0/3" in result.output
    assert "prompt=1.0.1->1.0.2 suggestions=1/1" in result.output
    assert "prompt=1.0.2->1.0.2 suggestions=0/0" in result.output


def test_history_rollback_prints_round_prompt(tmp_path: Path) -> None:
    _, history_path = _run_smoke(tmp_path, "--rounds", "3")

    result = CliRunner().invoke(
        agent_cycle,
        ["history", "rollback", str(history_path), "--round", "2"],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["version"] == "1.0.1"
    assert payload["system"] == "You are an echo assistant. Be concise."


def test_history_rollback_writes_output_file(tmp_path: Path) -> None:
    _, history_path = _run_smoke(tmp_path, "--rounds", "2")
    output = tmp_path / "prompts" / "round-1.json"

    result = CliRunner().invoke(
        agent_cycle,
        ["history", "rollback", str(history_path), "--round", "1", "--output", str(output)],
    )

    assert result.exit_code == 0, result.output
    assert "Prompt of round 1 (version 1.0.0) written to" in result.output
    assert json.loads(output.read_text("utf-8"))["user_template"] == "Echo: {input}"


def test_history_rollback_reports_unknown_round(tmp_path: Path) -> None:
    _, history_path = _run_smoke(tmp_path, "--rounds", "1")

    result = CliRunner().invoke(
        agent_cycle,
        ["history", "rollback", str(history_path), "--round", "5"],
    )

    assert result.exit_code == 1
    assert "Round 5 not found in history" in result.output


def test_history_show_reports_invalid_document(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text(json.dumps({"schema_version": "0.1.0"}), "utf-8")

    result = CliRunner().invoke(agent_cycle, ["history", "show", str(path)])

    assert result.exit_code == 1
    assert "Unsupported schema version: 0.1.0" in result.output
