"""Message bubble widget for conversation rendering."""

from __future__ import annotations

from typing import Any

from rich.markdown import Markdown
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import Static

from ..math_format import normalize_math


class MessageBubble(Vertical):
    """Render a single chat message with role, optional timestamp and image names.

    Assistant content goes through the math normalizer before Markdown
    rendering; the stored ``message_content`` is never rewritten.
    """

    DEFAULT_CSS = """
    MessageBubble {
        height: auto;
    }
    MessageBubble > #header-block {
        padding: 0;
    }
    MessageBubble > #image-block {
        color: $text-muted;
        padding: 0 1;
        border-left: solid $accent;
    }
    MessageBubble > #content-block {
        height: auto;
    }
    """

    def __init__(
        self,
        content: str,
        role: str,
        timestamp: str = "",
        image_names: tuple[str, ...] = (),
        assistant_name: str = "Kacung",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self.message_content = content
        self.role = role
        self.timestamp = timestamp
        self.image_names = image_names
        self.assistant_name = assistant_name
        self.add_class(f"role-{role}")
        self._content_widget: Static | None = None

    @property
    def role_prefix(self) -> str:
        return "You" if self.role == "user" else self.assistant_name

    def _compose_header(self) -> str:
        if self.timestamp:
            return f"**{self.role_prefix}**  _{self.timestamp}_"
        return f"**{self.role_prefix}**"

    def _compose_images(self) -> str:
        if not self.image_names:
            return ""
        count = len(self.image_names)
        label = "image" if count == 1 else "images"
        names = ", ".join(name or f"Image {i}" for i, name in enumerate(self.image_names, 1))
        return f"[{count} {label}] {names}"

    def rendered_text(self) -> str:
        """Return the text handed to the Markdown renderer."""
        text = self.message_content.rstrip()
        if self.role == "assistant":
            return normalize_math(text)
        return text

    def compose(self) -> ComposeResult:
        yield Static(Markdown(self._compose_header()), id="header-block")
        images = self._compose_images()
        if images:
            yield Static(Text(images, style="dim"), id="image-block")
        self._content_widget = Static("", id="content-block")
        yield self._content_widget

    def on_mount(self) -> None:
        self._refresh_content()

    def _refresh_content(self) -> None:
        if self._content_widget is None:
            return
        text = self.rendered_text()
        self._content_widget.update(Markdown(text) if text else "")

    def set_content(self, content: str) -> None:
        """Update message content and rerender."""
        self.message_content = content
        self._refresh_content()
