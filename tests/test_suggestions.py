from __future__ import annotations

import allure
import pytest

from agent_cycle.cycle.models import PromptSnapshot, Suggestion, SuggestionType
from agent_cycle.cycle.suggestions import apply_suggestions, bump_version
from agent_cycle.errors import ErrorCode, SuggestionApplyError

pytestmark = [
    allure.epic("Improvement Cycle"),
    allure.feature("Suggestion Application"),
]


def _prompt() -> PromptSnapshot:
    return PromptSnapshot(
        id="support",
        version="1.2.3",
        system="You are helpful. You are helpful.",
        user_template="Question: {input}",
        custom_fields={"tone": "neutral tone", "format": "plain text"},
    )


@pytest.mark.parametrize(
    ("bump", "expected"),
    [("patch", "1.2.4"), ("minor", "1.3.0"), ("major", "2.0.0")],
)
def test_bump_version(bump: str, expected: str) -> None:
    assert bump_version("1.2.3", bump) == expected


@pytest.mark.parametrize("version", ["1.2", "v1.2.3", "1.2.x", ""])
def test_bump_version_rejects_non_semver(version: str) -> None:
    with pytest.raises(SuggestionApplyError, match="Invalid version format") as caught:
        bump_version(version, "patch")

    assert caught.value.code is ErrorCode.SUGGESTION_APPLY_ERROR


def test_bump_version_rejects_unknown_bump() -> None:
    with pytest.raises(SuggestionApplyError, match="Unsupported version bump"):
        bump_version("1.0.0", "huge")


def test_system_suggestion_replaces_only_first_occurrence() -> None:
    suggestion = Suggestion(
        type=SuggestionType.SYSTEM_PROMPT,
        current_value="helpful",
        suggested_value="precise",
    )

    result = apply_suggestions(_prompt(), [suggestion])

    assert result.prompt.system == "You are precise. You are helpful."
    assert result.applied_count == 1
    assert result.prompt.version == "1.2.4"


def test_user_and_parameter_suggestions_apply_in_order() -> None:
    suggestions = [
        Suggestion(SuggestionType.USER_PROMPT, "Question:", "Customer question:"),
        Suggestion(SuggestionType.PARAMETERS, "plain text", "markdown"),
        Suggestion(SuggestionType.PARAMETERS, "markdown", "markdown table"),
    ]

    result = apply_suggestions(_prompt(), suggestions, bump="minor")

    assert result.prompt.user_template == "Customer question: {input}"
    assert result.prompt.custom_fields == {"tone": "neutral tone", "format": "markdown table"}
    assert result.applied_count == 3
    assert result.prompt.version == "1.3.0"


def test_unmatched_suggestions_are_skipped_with_reason() -> None:
    missing = Suggestion(SuggestionType.SYSTEM_PROMPT, "x" * 80, "y")
    unknown_param = Suggestion(SuggestionType.PARAMETERS, "formal tone", "casual tone")

    result = apply_suggestions(_prompt(), [missing, unknown_param])

    assert result.applied_count == 0
    assert result.prompt == _prompt()
    assert [suggestion for suggestion, _ in result.skipped] == [missing, unknown_param]
    assert result.skipped[0][1] == (
        f'current value not found in system prompt: "{"x" * 47}..."'
    )
    assert "any parameter field" in result.skipped[1][1]


def test_version_is_bumped_once_for_many_applied_suggestions() -> None:
    suggestions = [
        Suggestion(SuggestionType.SYSTEM_PROMPT, "You are helpful.", "Be brief."),
        Suggestion(SuggestionType.SYSTEM_PROMPT, "You are helpful.", "Be kind."),
    ]

    result = apply_suggestions(_prompt(), suggestions)

    assert result.prompt.system == "Be brief. Be kind."
    assert result.prompt.version == "1.2.4"


def test_bump_none_keeps_version() -> None:
    suggestion = Suggestion(SuggestionType.USER_PROMPT, "{input}", "{input}\nAnswer:")

    result = apply_suggestions(_prompt(), [suggestion], bump=None)

    assert result.prompt.version == "1.2.3"
    assert result.prompt.user_template == "Question: {input}\nAnswer:"


def test_original_prompt_is_not_mutated() -> None:
    prompt = _prompt()
    suggestion = Suggestion(SuggestionType.PARAMETERS, "neutral", "warm")

    result = apply_suggestions(prompt, [suggestion])

    assert prompt.custom_fields["tone"] == "neutral tone"
    assert result.prompt.custom_fields["tone"] == "warm tone"
