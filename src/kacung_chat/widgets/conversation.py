"""Scrollable conversation view widget."""

from __future__ import annotations

from collections.abc import Sequence

from textual.containers import VerticalScroll

from ..models import Message
from .message import MessageBubble


class ConversationView(VerticalScroll):
    """A scrollable container that hosts message bubbles."""

    def __init__(self, *args, assistant_name: str = "Kacung", **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.assistant_name = assistant_name

    def _bubble_for(self, message: Message, timestamp: str = "") -> MessageBubble:
        bubble = MessageBubble(
            content=message.content,
            role=message.role,
            timestamp=timestamp,
            image_names=tuple(image.name for image in message.images),
            assistant_name=self.assistant_name,
        )
        bubble.add_class(f"message-{message.role}")
        return bubble

    async def add_message(self, message: Message, timestamp: str = "") -> MessageBubble:
        """Create, mount, and scroll to a new message bubble."""
        bubble = self._bubble_for(message, timestamp)
        await self.mount(bubble)
        self.scroll_end(animate=True)
        return bubble

    async def show_messages(
        self, messages: Sequence[Message], timestamps: Sequence[str] = ()
    ) -> None:
        """Replace every bubble with ``messages``; hidden ones are skipped."""
        await self.remove_children()
        bubbles = []
        for index, message in enumerate(messages):
            if message.hidden:
                continue
            stamp = timestamps[index] if index < len(timestamps) else ""
            bubbles.append(self._bubble_for(message, stamp))
        if bubbles:
            await self.mount_all(bubbles)
        self.scroll_end(animate=False)
