"""Prefect wrapper around ``RoundController`` runs.

The controller already owns scheduling, cancellation and persistence; the
flow adds Prefect run tracking and a progress callback per completed cycle.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from prefect import flow

from agent_cycle.cycle.controller import RoundController
from agent_cycle.cycle.models import CycleResult


@flow(name="improvement_cycle_flow")
async def improvement_cycle_flow(
    *,
    controller: RoundController,
    on_progress: Callable[[str], None] | None = None,
) -> CycleResult:
    """Run one improvement cycle as a Prefect flow."""
    emit = on_progress or (lambda _: None)
    started = time.monotonic()
    emit("Improvement cycle started")

    result = await controller.run()

    elapsed = time.monotonic() - started
    emit(
        f"Improvement cycle finished in {elapsed:.1f}s after {len(result.rounds)} rounds: "
        f"{result.termination_reason}",
    )
    return result
