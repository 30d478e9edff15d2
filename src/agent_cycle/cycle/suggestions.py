"""Apply improver suggestions to prompt snapshots."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from agent_cycle.config import VERSION_BUMPS
from agent_cycle.cycle.models import PromptSnapshot, Suggestion, SuggestionType
from agent_cycle.errors import SuggestionApplyError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ApplyResult:
    """Updated snapshot plus the suggestions that could not be applied."""

    prompt: PromptSnapshot
    applied_count: int = 0
    skipped: list[tuple[Suggestion, str]] = field(default_factory=list)


def bump_version(version: str, bump: str) -> str:
    """Bump an ``x.y.z`` version string."""

    parts = version.split(".")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        raise SuggestionApplyError(
            f'Invalid version format: "{version}". Expected semver format (x.y.z)',
            context={"version": version},
        )
    if bump not in VERSION_BUMPS:
        raise SuggestionApplyError(
            f"Unsupported version bump: {bump!r}",
            context={"allowed": list(VERSION_BUMPS)},
        )
    major, minor, patch = (int(part) for part in parts)
    if bump == "major":
        return f"{major + 1}.0.0"
    if bump == "minor":
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"


def apply_suggestions(
    prompt: PromptSnapshot,
    suggestions: Sequence[Suggestion],
    bump: str | None = "patch",
) -> ApplyResult:
    """Replace the first occurrence of each suggestion's current value.

    Suggestions whose current value is absent are skipped with a reason.
    The version is bumped once when at least one suggestion applied.
    """

    result = ApplyResult(prompt=prompt)
    for suggestion in suggestions:
        updated, reason = _apply_one(result.prompt, suggestion)
        if updated is None:
            logger.debug("Skipped %s suggestion: %s", suggestion.type.value, reason)
            result.skipped.append((suggestion, reason))
            continue
        result.prompt = updated
        result.applied_count += 1

    if bump is not None and result.applied_count > 0:
        result.prompt = dataclasses.replace(
            result.prompt,
            version=bump_version(prompt.version, bump),
        )
    return result


def _apply_one(
    prompt: PromptSnapshot,
    suggestion: Suggestion,
) -> tuple[PromptSnapshot | None, str]:
    current = suggestion.current_value
    if suggestion.type is SuggestionType.SYSTEM_PROMPT:
        if current not in prompt.system:
            return None, f'current value not found in system prompt: "{_truncate(current)}"'
        system = prompt.system.replace(current, suggestion.suggested_value, 1)
        return dataclasses.replace(prompt, system=system), ""

    if suggestion.type is SuggestionType.USER_PROMPT:
        if current not in prompt.user_template:
            return None, f'current value not found in user template: "{_truncate(current)}"'
        template = prompt.user_template.replace(current, suggestion.suggested_value, 1)
        return dataclasses.replace(prompt, user_template=template), ""

    for key, value in prompt.custom_fields.items():
        if current in value:
            custom_fields = dict(prompt.custom_fields)
            custom_fields[key] = value.replace(current, suggestion.suggested_value, 1)
            return dataclasses.replace(prompt, custom_fields=custom_fields), ""
    return None, f'current value not found in any parameter field: "{_truncate(current)}"'


def _truncate(text: str, limit: int = 50) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
