"""Tests for the TaskManager lifecycle helper."""

from __future__ import annotations

import asyncio
import unittest

from kacung_chat.task_manager import TaskManager


async def _sleep_forever(marks: list[str], label: str) -> None:
    try:
        await asyncio.sleep(9999)
    except asyncio.CancelledError:
        marks.append(label)
        raise


class TaskManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate named and anonymous task lifecycle management."""

    async def test_add_anonymous_and_cancel_all(self) -> None:
        tm = TaskManager()
        cancelled: list[str] = []
        task = asyncio.create_task(_sleep_forever(cancelled, "anon"))
        tm.add(task)
        await asyncio.sleep(0)
        await tm.cancel_all()
        self.assertTrue(task.done())
        self.assertEqual(cancelled, ["anon"])

    async def test_add_named_and_cancel_by_name(self) -> None:
        tm = TaskManager()
        cancelled: list[str] = []
        task = asyncio.create_task(_sleep_forever(cancelled, "named"))
        tm.add(task, name="my_task")
        await asyncio.sleep(0)
        self.assertIs(tm.get("my_task"), task)

        await tm.cancel("my_task")
        self.assertTrue(task.done())
        self.assertEqual(cancelled, ["named"])
        self.assertIsNone(tm.get("my_task"))

    async def test_cancel_nonexistent_name_is_noop(self) -> None:
        tm = TaskManager()
        await tm.cancel("does_not_exist")

    async def test_named_task_forgets_itself_when_done(self) -> None:
        tm = TaskManager()

        async def _quick() -> int:
            return 1

        task = asyncio.create_task(_quick())
        tm.add(task, name="quick")
        await task
        await asyncio.sleep(0)
        self.assertIsNone(tm.get("quick"))
        self.assertEqual(tm.names(), [])

    async def test_replaced_name_is_not_forgotten_by_old_task(self) -> None:
        tm = TaskManager()

        async def _quick() -> None:
            return None

        old = asyncio.create_task(_quick())
        tm.add(old, name="slot")
        marks: list[str] = []
        new = asyncio.create_task(_sleep_forever(marks, "new"))
        tm.add(new, name="slot")
        await old
        await asyncio.sleep(0)
        self.assertIs(tm.get("slot"), new)
        await tm.cancel_all()

    async def test_cancel_prefix_only_hits_matching_names(self) -> None:
        tm = TaskManager()
        marks: list[str] = []
        tm.add(asyncio.create_task(_sleep_forever(marks, "a")), name="upload_progress:a")
        tm.add(asyncio.create_task(_sleep_forever(marks, "b")), name="upload_progress:b")
        keep = asyncio.create_task(_sleep_forever(marks, "keep"))
        tm.add(keep, name="response_progress:0")
        await asyncio.sleep(0)

        await tm.cancel_prefix("upload_progress:")
        self.assertEqual(sorted(marks), ["a", "b"])
        self.assertEqual(tm.names(), ["response_progress:0"])
        self.assertFalse(keep.done())
        await tm.cancel_all()

    async def test_failed_task_is_logged(self) -> None:
        tm = TaskManager()

        async def _boom() -> None:
            raise RuntimeError("boom")

        with self.assertLogs("kacung_chat.task_manager", level="WARNING") as logs:
            task = asyncio.create_task(_boom())
            tm.add(task)
            await asyncio.gather(task, return_exceptions=True)
            await asyncio.sleep(0)
        self.assertTrue(any("task.exception" in line for line in logs.output))

    async def test_await_all_waits_for_pending_tasks(self) -> None:
        tm = TaskManager()
        done: list[int] = []

        async def _short(value: int) -> None:
            await asyncio.sleep(0.01)
            done.append(value)

        tm.add(asyncio.create_task(_short(1)))
        tm.add(asyncio.create_task(_short(2)), name="two")
        await tm.await_all()
        self.assertEqual(sorted(done), [1, 2])


if __name__ == "__main__":
    unittest.main()
