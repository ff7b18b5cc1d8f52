"""Row of pending image attachments with upload progress and remove buttons."""

from __future__ import annotations

from collections.abc import Sequence

from textual.containers import Horizontal
from textual.message import Message
from textual.widgets import Button, Label

from ..models import ImageAttachment, UploadPhase

REMOVE_PREFIX = "remove-"


def describe_attachment(attachment: ImageAttachment, index: int) -> str:
    """Return the chip text, e.g. ``Image 1: cat.png 42% Analyzing Image...``."""
    name = attachment.name or "image"
    parts = [f"Image {index}: {name}"]
    if attachment.progress is not None and attachment.phase != UploadPhase.COMPLETE:
        parts.append(f"{attachment.progress}%")
    if attachment.status:
        parts.append(attachment.status)
    elif attachment.is_complete:
        parts.append("ready")
    return " ".join(parts)


class AttachmentTray(Horizontal):
    """Shows one chip per attachment; hidden while there are none."""

    DEFAULT_CSS = """
    AttachmentTray {
        height: auto;
        padding: 0 1;
    }
    AttachmentTray Label {
        margin-right: 1;
        padding: 0 1;
    }
    AttachmentTray Button {
        min-width: 3;
        margin-right: 2;
    }
    """

    class RemoveRequested(Message):
        """Posted when the remove button of an attachment is clicked."""

        def __init__(self, attachment_id: str) -> None:
            super().__init__()
            self.attachment_id = attachment_id

    async def show_attachments(self, attachments: Sequence[ImageAttachment]) -> None:
        await self.remove_children()
        widgets = []
        for index, attachment in enumerate(attachments, start=1):
            widgets.append(Label(describe_attachment(attachment, index)))
            widgets.append(
                Button(
                    "x",
                    id=f"{REMOVE_PREFIX}{attachment.id}",
                    variant="default",
                    disabled=attachment.is_uploading,
                )
            )
        if widgets:
            await self.mount_all(widgets)
        self.display = bool(attachments)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id or ""
        if button_id.startswith(REMOVE_PREFIX):
            event.stop()
            self.post_message(self.RemoveRequested(button_id[len(REMOVE_PREFIX) :]))
