"""Optional lifecycle observer notified by execution hosts."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from agent_cycle.execution.models import ExecutionResult, StreamingEvent

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExecutionObserver:
    """Lifecycle handlers; each one is optional.

    A host calls ``on_start`` once, ``on_emit`` per produced event, then
    exactly one of ``on_done``, ``on_error`` or ``on_cancel``.
    """

    on_start: Callable[[str], Any] | None = None
    on_emit: Callable[[str, StreamingEvent], Any] | None = None
    on_done: Callable[[str, ExecutionResult[Any]], Any] | None = None
    on_error: Callable[[str, BaseException, ExecutionResult[Any]], Any] | None = None
    on_cancel: Callable[[str, ExecutionResult[Any]], Any] | None = None


def notify(observer: ExecutionObserver | None, event: str, *args: Any) -> None:
    """Dispatch ``event`` to the matching handler if the observer has one."""

    if observer is None:
        return
    handler = getattr(observer, f"on_{event}", None)
    if handler is None:
        return
    try:
        handler(*args)
    except Exception:
        logger.exception("Execution observer %s handler failed", event)


def notify_terminal(
    observer: ExecutionObserver | None,
    name: str,
    result: ExecutionResult[Any],
) -> None:
    if result.canceled:
        notify(observer, "cancel", name, result)
    elif result.failed and result.error is not None:
        notify(observer, "error", name, result.error, result)
    else:
        notify(observer, "done", name, result)


def logging_observer(target: logging.Logger | None = None) -> ExecutionObserver:
    """Build an observer that reports lifecycle events through ``target``."""

    log = target or logger

    def _on_start(name: str) -> None:
        log.debug("Execution %s started", name)

    def _on_emit(name: str, event: StreamingEvent) -> None:
        log.debug("Execution %s emitted %s at %.1fms", name, event.type, event.metrics.elapsed_ms)

    def _on_done(name: str, result: ExecutionResult[Any]) -> None:
        log.info(
            "Execution %s succeeded in %.1fms (calls=%s cost=%.6f)",
            name,
            result.summary.duration_ms,
            result.summary.call_count,
            result.summary.total_cost,
        )

    def _on_error(name: str, error: BaseException, result: ExecutionResult[Any]) -> None:
        log.warning(
            "Execution %s failed after %.1fms: %s",
            name,
            result.summary.duration_ms,
            error,
        )

    def _on_cancel(name: str, result: ExecutionResult[Any]) -> None:
        log.info("Execution %s canceled after %.1fms", name, result.summary.duration_ms)

    return ExecutionObserver(
        on_start=_on_start,
        on_emit=_on_emit,
        on_done=_on_done,
        on_error=_on_error,
        on_cancel=_on_cancel,
    )
