"""Shared helpers: wall clock and background task tracking."""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Set

from loguru import logger

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class BackgroundTasks:
    """
    Fire-and-forget task set.

    Callers never await the work they schedule here. Failures are logged
    and dropped. ``join`` lets shutdown and tests wait for quiescence.
    """

    def __init__(self, name: str = "background"):
        self.name = name
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable, label: Optional[str] = None) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, label))
        return task

    def _on_done(self, task: asyncio.Task, label: Optional[str]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"{self.name} task {label or ''} failed: {error}")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait until every scheduled task, including ones spawned meanwhile, finishes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.join()
