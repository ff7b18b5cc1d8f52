"""Synthetic progress crawl shown while a request is in flight.

The value only gives the user continuous feedback; it is not a completion
percentage. It creeps up on a fixed interval, never past ``cap``, until the
owner stops it when the real result arrives.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging

from .task_manager import TaskManager

LOGGER = logging.getLogger(__name__)


class ProgressCrawl:
    """A cancellable periodic task that advances a progress value.

    ``read`` returns the current value and ``write`` stores the next one, so
    the owner keeps the single source of truth for the value.
    """

    def __init__(
        self,
        task_manager: TaskManager,
        name: str,
        *,
        read: Callable[[], int | None],
        write: Callable[[int], None],
        interval_seconds: float,
        cap: int,
        step: int = 1,
    ) -> None:
        self._tasks = task_manager
        self.name = name
        self._read = read
        self._write = write
        self.interval_seconds = max(0.0, interval_seconds)
        self.cap = cap
        self.step = max(1, step)

    @property
    def running(self) -> bool:
        task = self._tasks.get(self.name)
        return task is not None and not task.done()

    def start(self) -> None:
        """Schedule the crawl; a crawl already running under this name is kept."""
        if self.running:
            return
        self._tasks.add(asyncio.create_task(self._run(), name=self.name), name=self.name)

    async def stop(self) -> None:
        await self._tasks.cancel(self.name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            current = self._read()
            if current is None:
                return
            if current >= self.cap:
                continue
            self._write(min(self.cap, current + self.step))
