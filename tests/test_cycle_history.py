from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from agent_cycle.conditions.models import max_rounds
from agent_cycle.cycle.history import SCHEMA_VERSION, CycleHistory, HistoryStore, parse_history
from agent_cycle.cycle.models import PromptSnapshot
from agent_cycle.errors import ErrorCode, HistoryError

pytestmark = [
    allure.epic("Improvement Cycle"),
    allure.feature("Cycle History"),
]


async def _saved_history(smoke_controller, path: Path) -> HistoryStore:
    store = HistoryStore(path)
    await smoke_controller([max_rounds(2)], history=store).run()
    return store


async def test_saved_document_has_schema_and_round_fields(smoke_controller, tmp_path) -> None:
    store = await _saved_history(smoke_controller, tmp_path / "history.json")

    raw = json.loads(store.path.read_text("utf-8"))

    assert raw["schema_version"] == SCHEMA_VERSION
    assert raw["initial_prompt"]["version"] == "1.0.0"
    assert raw["current_prompt"]["version"] == "1.0.1"
    first = raw["rounds"][0]
    assert first["round"] == 1
    assert first["total_tests"] == 3
    assert first["score_delta"] is None
    assert first["suggestions_generated"] == 1
    assert first["suggestions_applied"] == 1
    assert first["cost"]["total"] == pytest.approx(
        first["cost"]["agent"] + first["cost"]["judge"] + first["cost"]["improver"],
    )


async def test_load_round_trips_saved_history(smoke_controller, tmp_path) -> None:
    store = await _saved_history(smoke_controller, tmp_path / "history.json")

    history = store.load()

    assert history.completed
    assert history.termination_reason == "Maximum rounds reached (2)"
    assert [entry.prompt_version_after for entry in history.rounds] == ["1.0.1", "1.0.1"]
    assert history.to_dict() == parse_history(history.to_dict()).to_dict()


async def test_snapshot_for_round_returns_prompt_used_by_round(smoke_controller, tmp_path) -> None:
    store = await _saved_history(smoke_controller, tmp_path / "history.json")

    first = store.snapshot_for_round(1)
    second = store.snapshot_for_round(2)

    assert first.version == "1.0.0"
    assert second.version == "1.0.1"
    assert second.system.endswith("Be concise.")
    with pytest.raises(HistoryError, match="Round 3 not found in history"):
        store.snapshot_for_round(3)


def test_completed_history_rejects_new_rounds() -> None:
    prompt = PromptSnapshot(id="p", version="1.0.0", system="s", user_template="u")
    history = CycleHistory.start(prompt)
    history.complete("done")

    with pytest.raises(HistoryError, match="completed session"):
        history.add_round(None, prompt)


def test_missing_file_is_history_error(tmp_path: Path) -> None:
    with pytest.raises(HistoryError) as caught:
        HistoryStore(tmp_path / "absent.json").load()

    assert caught.value.code is ErrorCode.HISTORY_ERROR
    assert isinstance(caught.value.__cause__, OSError)


@pytest.mark.parametrize("content", ["not json", "[1, 2]"])
def test_unreadable_document_is_history_error(tmp_path: Path, content: str) -> None:
    path = tmp_path / "history.json"
    path.write_text(content, "utf-8")

    with pytest.raises(HistoryError, match="Cannot read cycle history"):
        HistoryStore(path).load()


async def test_schema_version_mismatch_is_rejected(smoke_controller, tmp_path) -> None:
    store = await _saved_history(smoke_controller, tmp_path / "history.json")
    raw = json.loads(store.path.read_text("utf-8"))
    raw["schema_version"] = "0.9.0"

    with pytest.raises(HistoryError, match="Unsupported schema version: 0.9.0"):
        parse_history(raw)


async def test_missing_fields_are_listed(smoke_controller, tmp_path) -> None:
    store = await _saved_history(smoke_controller, tmp_path / "history.json")
    raw = json.loads(store.path.read_text("utf-8"))
    del raw["rounds"]
    del raw["total_cost"]

    with pytest.raises(HistoryError, match="missing fields rounds, total_cost"):
        parse_history(raw)


async def test_malformed_round_is_rejected(smoke_controller, tmp_path) -> None:
    store = await _saved_history(smoke_controller, tmp_path / "history.json")
    raw = json.loads(store.path.read_text("utf-8"))
    raw["rounds"][1]["avg_score"] = "high"

    with pytest.raises(HistoryError, match="Invalid history round") as caught:
        parse_history(raw)

    assert caught.value.context == {"round": 2}
