"""Image upload pipeline.

Validates a selected image, converts it to a data URL, asks the vision
provider for a description and tracks the attachment until it is sent with
the next message.
"""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Callable
from dataclasses import replace
import json
import logging
from typing import TYPE_CHECKING, Any

from ..exceptions import AttachmentValidationError, VisionError
from ..models import ImageAttachment, ImageSource, UploadPhase, new_attachment_id
from ..progress import ProgressCrawl

if TYPE_CHECKING:
    from ..providers import VisionClient
    from ..task_manager import TaskManager

LOGGER = logging.getLogger(__name__)

TEN_MIB = 10 * 1024 * 1024


def to_data_url(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def serialize_description(description: Any) -> str:
    """Store structured descriptions as JSON text; plain strings verbatim."""
    if isinstance(description, str):
        return description
    return json.dumps(description, ensure_ascii=False)


class ImageUploadPipeline:
    """Owns the pending attachments for the next message.

    Each upload runs as its own task and only ever touches its own
    attachment, looked up by id, so several uploads may progress at once.
    ``clear`` bumps a generation counter; uploads started before it drop
    their results.
    """

    def __init__(
        self,
        vision_client: VisionClient,
        task_manager: TaskManager,
        *,
        max_image_bytes: int = TEN_MIB,
        progress_interval_seconds: float = 0.3,
        progress_cap: int = 80,
        status_reset_delay_seconds: float = 2.0,
    ) -> None:
        self.vision = vision_client
        self.task_manager = task_manager
        self.max_image_bytes = max_image_bytes
        self.progress_interval_seconds = progress_interval_seconds
        self.progress_cap = progress_cap
        self.status_reset_delay_seconds = status_reset_delay_seconds
        self._attachments: list[ImageAttachment] = []
        self._generation = 0
        self._on_change: Callable[[tuple[ImageAttachment, ...]], None] | None = None
        self._on_error: Callable[[str], None] | None = None

    def on_change(
        self, callback: Callable[[tuple[ImageAttachment, ...]], None]
    ) -> None:
        """Register callback invoked with the attachment list after each change."""
        self._on_change = callback

    def on_error(self, callback: Callable[[str], None]) -> None:
        """Register callback for user-visible upload errors."""
        self._on_error = callback

    @property
    def attachments(self) -> tuple[ImageAttachment, ...]:
        return tuple(self._attachments)

    @property
    def is_processing(self) -> bool:
        return any(item.is_uploading for item in self._attachments)

    def get(self, attachment_id: str) -> ImageAttachment | None:
        for item in self._attachments:
            if item.id == attachment_id:
                return item
        return None

    def validate(self, source: ImageSource) -> str | None:
        """Return the user-facing rejection message, or ``None`` if acceptable."""
        if not source.mime_type.lower().startswith("image/"):
            return "Please upload a valid image file"
        if source.size > self.max_image_bytes:
            max_mb = self.max_image_bytes / (1024 * 1024)
            return f"Image size must be less than {max_mb:g}MB"
        return None

    def start_upload(
        self, source: ImageSource, prompt_hint: str = ""
    ) -> asyncio.Task[ImageAttachment | None] | None:
        """Validate and schedule an upload.

        Returns ``None`` when the source is rejected; nothing is added and the
        vision provider is not called.
        """
        message = self.validate(source)
        if message is not None:
            LOGGER.info(
                "upload.rejected",
                extra={"event": "upload.rejected", "file_name": source.name, "reason": message},
            )
            self._report_error(message)
            return None
        task = asyncio.create_task(self.upload(source, prompt_hint))
        self.task_manager.add(task)
        return task

    async def upload(
        self, source: ImageSource, prompt_hint: str = ""
    ) -> ImageAttachment | None:
        """Run one upload to completion and return the finished attachment.

        Returns ``None`` when the upload failed, was removed by the user, or
        was superseded by ``clear``.
        """
        message = self.validate(source)
        if message is not None:
            raise AttachmentValidationError(message)

        generation = self._generation
        attachment = ImageAttachment(id=new_attachment_id(), name=source.name)
        self._attachments.append(attachment)
        self._notify()
        attachment_id = attachment.id
        crawl = ProgressCrawl(
            self.task_manager,
            f"upload_progress:{attachment_id}",
            read=lambda: self._read_progress(attachment_id),
            write=lambda value: self._update(attachment_id, progress=value),
            interval_seconds=self.progress_interval_seconds,
            cap=self.progress_cap,
        )
        LOGGER.info(
            "upload.start",
            extra={
                "event": "upload.start",
                "attachment_id": attachment_id,
                "file_name": source.name,
                "size": source.size,
            },
        )

        try:
            self._update(
                attachment_id,
                phase=UploadPhase.CONVERTING,
                progress=15,
                status="Converting...",
            )
            data = await asyncio.to_thread(source.read)
            data_url = to_data_url(data, source.mime_type)
            if not self._update(
                attachment_id,
                data_url=data_url,
                progress=30,
                status="Processing data...",
                generation=generation,
            ):
                return None

            self._update(
                attachment_id,
                phase=UploadPhase.UPLOADING,
                progress=40,
                status="Analyzing Image...",
            )
            crawl.start()
            try:
                description = await self.vision.describe(data_url, prompt_hint)
            finally:
                await crawl.stop()

            if not self._update(
                attachment_id,
                progress=90,
                status="Finalizing...",
                generation=generation,
            ):
                LOGGER.info(
                    "upload.discarded",
                    extra={"event": "upload.discarded", "attachment_id": attachment_id},
                )
                return None
            self._update(
                attachment_id,
                description=serialize_description(description),
                phase=UploadPhase.COMPLETE,
                progress=100,
                status="Complete",
            )
        except (OSError, VisionError) as exc:
            error = str(exc) or "Failed to process image"
            if isinstance(exc, OSError):
                error = f"Failed to read image: {exc.strerror or exc}"
            LOGGER.warning(
                "upload.failed",
                extra={
                    "event": "upload.failed",
                    "attachment_id": attachment_id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            if generation == self._generation and self._drop(attachment_id):
                self._report_error(error)
            return None
        except Exception:
            self._drop(attachment_id)
            raise

        self.task_manager.add(
            asyncio.create_task(self._reset_status_later(attachment_id, generation)),
            name=f"upload_reset:{attachment_id}",
        )
        LOGGER.info(
            "upload.complete",
            extra={"event": "upload.complete", "attachment_id": attachment_id},
        )
        return self.get(attachment_id)

    def remove(self, attachment_id: str) -> bool:
        """Remove one attachment; an in-flight upload for it is abandoned."""
        return self._drop(attachment_id)

    def take_all(self) -> tuple[ImageAttachment, ...]:
        """Hand over every attachment and empty the list."""
        taken = tuple(self._attachments)
        self._attachments.clear()
        if taken:
            self._notify()
        return taken

    async def clear(self) -> None:
        self._generation += 1
        await self.task_manager.cancel_prefix("upload_progress:")
        await self.task_manager.cancel_prefix("upload_reset:")
        self._attachments.clear()
        self._notify()

    async def _reset_status_later(self, attachment_id: str, generation: int) -> None:
        await asyncio.sleep(self.status_reset_delay_seconds)
        self._update(attachment_id, progress=None, status=None, generation=generation)

    def _read_progress(self, attachment_id: str) -> int | None:
        item = self.get(attachment_id)
        if item is None:
            return None
        return item.progress

    def _update(
        self, attachment_id: str, *, generation: int | None = None, **changes: Any
    ) -> bool:
        """Replace the attachment with ``id`` by an updated copy.

        Returns ``False`` when it no longer exists or ``generation`` is stale.
        """
        if generation is not None and generation != self._generation:
            return False
        for index, item in enumerate(self._attachments):
            if item.id == attachment_id:
                self._attachments[index] = replace(item, **changes)
                self._notify()
                return True
        return False

    def _drop(self, attachment_id: str) -> bool:
        before = len(self._attachments)
        self._attachments = [a for a in self._attachments if a.id != attachment_id]
        if len(self._attachments) == before:
            return False
        self._notify()
        return True

    def _notify(self) -> None:
        if self._on_change:
            self._on_change(self.attachments)

    def _report_error(self, message: str) -> None:
        if self._on_error:
            self._on_error(message)

