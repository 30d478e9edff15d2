"""Shared test fixtures."""

from __future__ import annotations

import os

import pytest

from agent_cycle.cycle.controller import RoundController
from agent_cycle.cycle.smoke import (
    EchoAgent,
    KeywordImprover,
    KeywordJudge,
    smoke_cases,
    smoke_prompt,
)


@pytest.fixture(autouse=True)
def clean_agent_cycle_env(monkeypatch):
    """Drop AGENT_CYCLE_* variables so settings defaults apply."""
    for name in list(os.environ):
        if name.startswith("AGENT_CYCLE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def smoke_controller():
    """Build a RoundController wired to the echo smoke collaborators."""

    def _build(terminate_when, **overrides) -> RoundController:
        options = {
            "agent_factory": EchoAgent,
            "judge": KeywordJudge(),
            "test_cases": smoke_cases(),
            "initial_prompt": smoke_prompt(),
            "terminate_when": terminate_when,
            "improver": KeywordImprover(),
        }
        options.update(overrides)
        return RoundController(**options)

    return _build
