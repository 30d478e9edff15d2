"""Error taxonomy shared by execution hosts, retry loop and improvement cycle."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agent_cycle.validation.history import ValidationHistory


class ErrorCode(str, Enum):
    """Stable error codes exposed in diagnostics."""

    EXECUTION_ERROR = "EXECUTION_ERROR"
    CANCELLED = "CANCELLED"
    VALIDATION_EXHAUSTED = "VALIDATION_EXHAUSTED"
    INVALID_CONFIG = "INVALID_CONFIG"
    COLLABORATOR_ERROR = "COLLABORATOR_ERROR"
    HISTORY_ERROR = "HISTORY_ERROR"
    SUGGESTION_APPLY_ERROR = "SUGGESTION_APPLY_ERROR"


class AgentCycleError(Exception):
    """Base error carrying a code and structured diagnostic context."""

    default_code = ErrorCode.EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context: dict[str, Any] = dict(context or {})

    @property
    def is_retryable(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        """Serialize error diagnostics for logs and history files."""

        cause = self.__cause__
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "is_retryable": self.is_retryable,
            "context": self.context,
            "cause": str(cause) if cause is not None else None,
        }


class ExecutionError(AgentCycleError):
    """Failure raised while driving one unit of work."""

    default_code = ErrorCode.EXECUTION_ERROR


class OperationCancelledError(AgentCycleError):
    """Cooperative cancellation observed at a checkpoint."""

    default_code = ErrorCode.CANCELLED


class ConfigurationError(AgentCycleError, ValueError):
    """Invalid parameters detected before any asynchronous work starts."""

    default_code = ErrorCode.INVALID_CONFIG


class CollaboratorError(AgentCycleError):
    """Judge or improver failure that aborts the improvement cycle."""

    default_code = ErrorCode.COLLABORATOR_ERROR

    def __init__(
        self,
        message: str,
        *,
        collaborator: str,
        round_number: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        merged = {"collaborator": collaborator, "round": round_number}
        merged.update(context or {})
        super().__init__(message, context=merged)
        self.collaborator = collaborator
        self.round_number = round_number


class HistoryError(AgentCycleError):
    """Invalid or unreadable cycle history document."""

    default_code = ErrorCode.HISTORY_ERROR


class SuggestionApplyError(AgentCycleError):
    """Suggestion could not be applied to a prompt snapshot."""

    default_code = ErrorCode.SUGGESTION_APPLY_ERROR


class ValidationExhaustedError(AgentCycleError):
    """Every validation attempt ran and none was accepted."""

    default_code = ErrorCode.VALIDATION_EXHAUSTED

    def __init__(self, message: str, history: ValidationHistory[Any]) -> None:
        super().__init__(
            message,
            context={
                "attempts": len(history.all),
                "failure_reasons": history.failure_reasons,
            },
        )
        self.history = history
