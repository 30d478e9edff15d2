"""Lifecycle shared by simple and streaming execution hosts."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any, Generic, TypeVar

from agent_cycle.errors import OperationCancelledError
from agent_cycle.execution.cancellation import CancellationToken
from agent_cycle.execution.models import ExecutionResult
from agent_cycle.execution.observer import ExecutionObserver
from agent_cycle.execution.shared import HookRunner

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CANCEL_REASON = "Execution canceled"


class BaseExecutionHost(ABC, Generic[T]):
    """Drive one unit of work to exactly one terminal ``ExecutionResult``.

    Work starts on the first ``start()``/``result()`` call and is driven by
    a single task; the result is cached and never recomputed.
    """

    def __init__(
        self,
        *,
        name: str = "execution",
        token: CancellationToken | None = None,
        observer: ExecutionObserver | None = None,
    ) -> None:
        self.name = name
        self._observer = observer
        self._token = CancellationToken.linked(token)
        self._hooks = HookRunner()
        self._cancel_requested = False
        self._driver: asyncio.Task[ExecutionResult[T]] | None = None
        self._work_task: asyncio.Task[Any] | None = None

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def started(self) -> bool:
        return self._driver is not None

    @property
    def finished(self) -> bool:
        return self._driver is not None and self._driver.done()

    def start(self) -> asyncio.Task[ExecutionResult[T]]:
        """Schedule the work on the running loop if it is not running yet."""

        if self._driver is None:
            self._driver = asyncio.get_running_loop().create_task(
                self._drive(),
                name=f"agent-cycle:{self.name}",
            )
        return self._driver

    async def result(self) -> ExecutionResult[T]:
        """Return the terminal outcome, starting the work when needed."""

        return await asyncio.shield(self.start())

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation; the work resolves at its next suspension point."""

        self._cancel_requested = True
        self._token.cancel(reason or DEFAULT_CANCEL_REASON)
        work_task = self._work_task
        if work_task is not None and not work_task.done():
            work_task.cancel()

    async def cleanup(self) -> None:
        """Run teardown hooks if they have not run yet."""

        if await self._hooks.run():
            logger.debug("Execution %s cleaned up", self.name)
        self._token.detach()

    async def __aenter__(self) -> BaseExecutionHost[T]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if self._driver is not None and not self._driver.done():
            self.cancel()
            await asyncio.shield(self._driver)
        await self.cleanup()

    async def _run_work(
        self,
        work: Callable[[], Awaitable[Any]],
    ) -> tuple[Any, BaseException | None]:
        """Run ``work()`` as its own task so ``cancel()`` can interrupt it."""

        if self._token.cancelled:
            return None, OperationCancelledError(
                self._token.reason or DEFAULT_CANCEL_REASON,
                context={"execution": self.name},
            )
        loop = asyncio.get_running_loop()
        work_task = self._work_task = asyncio.ensure_future(work())

        def _interrupt() -> None:
            if not work_task.done():
                work_task.cancel()

        # A cancelled parent token interrupts the work like cancel() does.
        remove = self._token.add_callback(lambda: loop.call_soon_threadsafe(_interrupt))
        try:
            return await work_task, None
        except asyncio.CancelledError as error:
            return None, error
        except Exception as error:
            return None, error
        finally:
            remove()

    @abstractmethod
    async def _drive(self) -> ExecutionResult[T]:
        """Run the work once and build the terminal result."""
