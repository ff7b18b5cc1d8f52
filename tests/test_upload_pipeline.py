"""Tests for the image upload pipeline."""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any
import unittest

from kacung_chat.exceptions import AttachmentValidationError, VisionError
from kacung_chat.managers.attachment import ImageUploadPipeline
from kacung_chat.models import ImageAttachment, ImageSource, UploadPhase
from kacung_chat.task_manager import TaskManager


class FakeVisionClient:
    """Returns a canned description, optionally after a gate opens."""

    def __init__(
        self,
        result: Any = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.result = result if result is not None else {"description": "a red car"}
        self.error = error
        self.gate = gate
        self.calls: list[tuple[str, str]] = []

    async def describe(self, image_url: str, user_prompt: str = "") -> Any:
        self.calls.append((image_url, user_prompt))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


def _png(size: int = 16, name: str = "car.png") -> ImageSource:
    return ImageSource.from_bytes(b"\x89PNG" + b"0" * (size - 4), "image/png", name=name)


class ImageUploadPipelineTests(unittest.IsolatedAsyncioTestCase):
    def _pipeline(self, vision: FakeVisionClient, **kwargs: Any) -> ImageUploadPipeline:
        self.tasks = TaskManager()
        options = {
            "progress_interval_seconds": 0.001,
            "status_reset_delay_seconds": 5.0,
        }
        options.update(kwargs)
        pipeline = ImageUploadPipeline(vision, self.tasks, **options)
        self.snapshots: list[tuple[ImageAttachment, ...]] = []
        self.errors: list[str] = []
        pipeline.on_change(self.snapshots.append)
        pipeline.on_error(self.errors.append)
        return pipeline

    async def asyncTearDown(self) -> None:
        await self.tasks.cancel_all()

    async def test_valid_image_completes_with_description(self) -> None:
        vision = FakeVisionClient({"description": "a red car", "objects": ["car"]})
        pipeline = self._pipeline(vision)
        source = _png()

        attachment = await pipeline.upload(source, "what car is this?")

        assert attachment is not None
        self.assertEqual(attachment.phase, UploadPhase.COMPLETE)
        self.assertEqual(attachment.progress, 100)
        self.assertEqual(attachment.status, "Complete")
        self.assertEqual(
            json.loads(attachment.description or ""),
            {"description": "a red car", "objects": ["car"]},
        )
        expected_url = "data:image/png;base64," + base64.b64encode(source.read()).decode()
        self.assertEqual(attachment.data_url, expected_url)
        self.assertEqual(vision.calls, [(expected_url, "what car is this?")])

        phases = [snap[0].phase for snap in self.snapshots if snap]
        self.assertEqual(phases[0], UploadPhase.PENDING)
        self.assertIn(UploadPhase.CONVERTING, phases)
        self.assertIn(UploadPhase.UPLOADING, phases)
        self.assertEqual(phases[-1], UploadPhase.COMPLETE)
        progress = [snap[0].progress for snap in self.snapshots if snap]
        self.assertEqual(progress[:4], [0, 15, 30, 40])
        self.assertFalse(pipeline.is_processing)
        self.assertEqual(self.errors, [])

    async def test_string_description_is_stored_verbatim(self) -> None:
        pipeline = self._pipeline(FakeVisionClient("A plain sentence."))
        attachment = await pipeline.upload(_png())
        assert attachment is not None
        self.assertEqual(attachment.description, "A plain sentence.")

    async def test_oversized_file_never_reaches_provider(self) -> None:
        vision = FakeVisionClient()
        pipeline = self._pipeline(vision)
        big = ImageSource(
            name="huge.png", mime_type="image/png", size=10 * 1024 * 1024 + 1, reader=bytes
        )

        self.assertIsNone(pipeline.start_upload(big))

        self.assertEqual(self.errors, ["Image size must be less than 10MB"])
        self.assertEqual(vision.calls, [])
        self.assertEqual(pipeline.attachments, ())
        self.assertEqual(self.snapshots, [])

    async def test_exactly_ten_mib_is_accepted(self) -> None:
        pipeline = self._pipeline(FakeVisionClient())
        edge = ImageSource(
            name="edge.png", mime_type="image/png", size=10 * 1024 * 1024, reader=bytes
        )
        self.assertIsNone(pipeline.validate(edge))

    async def test_non_image_mime_rejected(self) -> None:
        vision = FakeVisionClient()
        pipeline = self._pipeline(vision)
        text_file = ImageSource.from_bytes(b"hello", "text/plain", name="notes.txt")

        self.assertIsNone(pipeline.start_upload(text_file))
        self.assertEqual(self.errors, ["Please upload a valid image file"])
        self.assertEqual(vision.calls, [])
        with self.assertRaises(AttachmentValidationError):
            await pipeline.upload(text_file)

    async def test_vision_failure_removes_attachment(self) -> None:
        vision = FakeVisionClient(
            error=VisionError("Gemini vision model failed with status 500")
        )
        pipeline = self._pipeline(vision)

        self.assertIsNone(await pipeline.upload(_png()))

        self.assertEqual(pipeline.attachments, ())
        self.assertEqual(self.errors, ["Gemini vision model failed with status 500"])

    async def test_read_failure_removes_attachment(self) -> None:
        def _unreadable() -> bytes:
            raise PermissionError(13, "Permission denied")

        vision = FakeVisionClient()
        pipeline = self._pipeline(vision)
        source = ImageSource(name="x.png", mime_type="image/png", size=4, reader=_unreadable)

        self.assertIsNone(await pipeline.upload(source))

        self.assertEqual(pipeline.attachments, ())
        self.assertEqual(self.errors, ["Failed to read image: Permission denied"])
        self.assertEqual(vision.calls, [])

    async def test_progress_crawls_while_waiting_and_respects_cap(self) -> None:
        gate = asyncio.Event()
        pipeline = self._pipeline(FakeVisionClient(gate=gate), progress_cap=45)
        task = pipeline.start_upload(_png())
        assert task is not None

        for _ in range(500):
            await asyncio.sleep(0.001)
            current = pipeline.attachments[0] if pipeline.attachments else None
            if current is not None and current.progress == 45:
                break
        current = pipeline.attachments[0]
        self.assertTrue(pipeline.is_processing)
        self.assertEqual(current.phase, UploadPhase.UPLOADING)
        self.assertEqual(current.status, "Analyzing Image...")
        self.assertEqual(current.progress, 45)

        gate.set()
        finished = await task
        assert finished is not None
        self.assertTrue(finished.is_complete)

    async def test_concurrent_uploads_update_independently(self) -> None:
        gate = asyncio.Event()
        pipeline = self._pipeline(FakeVisionClient(gate=gate))
        first = pipeline.start_upload(_png(name="a.png"))
        second = pipeline.start_upload(_png(name="b.png"))
        assert first is not None and second is not None
        await asyncio.sleep(0.01)
        self.assertEqual(len(pipeline.attachments), 2)
        gate.set()
        results = await asyncio.gather(first, second)
        self.assertEqual({r.name for r in results if r is not None}, {"a.png", "b.png"})
        self.assertEqual(len({r.id for r in results if r is not None}), 2)

    async def test_clear_discards_in_flight_upload(self) -> None:
        gate = asyncio.Event()
        pipeline = self._pipeline(FakeVisionClient(gate=gate))
        task = pipeline.start_upload(_png())
        assert task is not None
        await asyncio.sleep(0.01)

        await pipeline.clear()
        gate.set()

        self.assertIsNone(await task)
        self.assertEqual(pipeline.attachments, ())

    async def test_removed_upload_result_is_dropped(self) -> None:
        gate = asyncio.Event()
        pipeline = self._pipeline(FakeVisionClient(gate=gate))
        task = pipeline.start_upload(_png())
        assert task is not None
        await asyncio.sleep(0.01)

        self.assertTrue(pipeline.remove(pipeline.attachments[0].id))
        gate.set()

        self.assertIsNone(await task)
        self.assertEqual(pipeline.attachments, ())

    async def test_status_resets_after_delay(self) -> None:
        pipeline = self._pipeline(FakeVisionClient(), status_reset_delay_seconds=0.01)
        attachment = await pipeline.upload(_png())
        assert attachment is not None
        await asyncio.sleep(0.05)
        settled = pipeline.get(attachment.id)
        assert settled is not None
        self.assertIsNone(settled.progress)
        self.assertIsNone(settled.status)
        self.assertEqual(settled.description, attachment.description)

    async def test_uploads_complete_with_info_logging_enabled(self) -> None:
        pipeline = self._pipeline(FakeVisionClient())
        with self.assertLogs("kacung_chat.managers.attachment", level="INFO") as logs:
            attachment = await pipeline.upload(_png(name="car.png"))
            rejected = pipeline.start_upload(
                ImageSource.from_bytes(b"hello", "text/plain", name="notes.txt")
            )

        assert attachment is not None
        self.assertTrue(attachment.is_complete)
        self.assertFalse(pipeline.is_processing)
        self.assertIsNone(rejected)
        self.assertEqual(self.errors, ["Please upload a valid image file"])
        self.assertTrue(any("upload.start" in line for line in logs.output))
        self.assertTrue(any("upload.rejected" in line for line in logs.output))

    async def test_take_all_empties_list(self) -> None:
        pipeline = self._pipeline(FakeVisionClient())
        await pipeline.upload(_png())
        taken = pipeline.take_all()
        self.assertEqual(len(taken), 1)
        self.assertEqual(pipeline.attachments, ())


if __name__ == "__main__":
    unittest.main()
