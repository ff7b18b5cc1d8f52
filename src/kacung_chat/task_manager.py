"""Lifecycle tracking for the client's background asyncio tasks.

Chat requests, image uploads, and the synthetic progress timers all run as
tasks registered here so they can be cancelled together on clear or exit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Manage named and anonymous background asyncio tasks."""

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}
        self._anonymous: set[asyncio.Task[Any]] = set()

    def add(self, task: asyncio.Task[Any], name: str | None = None) -> None:
        """Register a task, optionally under a unique name.

        Named tasks replace any prior task with the same name (the old task
        is *not* cancelled automatically; use ``cancel`` first).  Named tasks
        drop themselves from tracking when they finish.  Anonymous tasks
        self-clean when they complete.
        """
        if name is not None:
            self._named[name] = task
            task.add_done_callback(lambda done, key=name: self._forget(key, done))
        else:
            self._anonymous.add(task)
            task.add_done_callback(self._anonymous.discard)
        task.add_done_callback(self._log_exception)

    def _forget(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._named.get(name) is task:
            del self._named[name]

    def _log_exception(self, task: asyncio.Task[Any]) -> None:
        """Log unhandled task exceptions so they are not silently lost."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning(
                "task.exception",
                extra={
                    "event": "task.exception",
                    "task": task.get_name(),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    def get(self, name: str) -> asyncio.Task[Any] | None:
        """Return the named task or ``None`` if not registered."""
        return self._named.get(name)

    def names(self) -> list[str]:
        return sorted(self._named)

    async def cancel(self, name: str) -> None:
        """Cancel a named task and await its completion."""
        task = self._named.pop(name, None)
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def cancel_prefix(self, prefix: str) -> None:
        """Cancel every named task whose name starts with ``prefix``."""
        for name in [key for key in self._named if key.startswith(prefix)]:
            await self.cancel(name)

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        current = asyncio.current_task()
        all_tasks: list[asyncio.Task[Any]] = [
            t
            for t in list(self._named.values()) + list(self._anonymous)
            if not t.done() and t is not current
        ]
        for task in all_tasks:
            task.cancel()
        for task in all_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # noqa: BLE001 - already logged by _log_exception.
                pass
        self._named.clear()
        self._anonymous.clear()

    async def await_all(self) -> None:
        """Await all tracked tasks without cancelling them.

        Tasks scheduled while waiting are awaited too.
        """
        current = asyncio.current_task()
        while True:
            pending = [
                t
                for t in list(self._named.values()) + list(self._anonymous)
                if not t.done() and t is not current
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
