"""Input row containing the message field and the image, send and clear buttons."""

from __future__ import annotations

from textual.containers import Horizontal, Vertical
from textual.message import Message
from textual.widgets import Button, Input


class InputBox(Vertical):
    """Input region with message field, attach button, send and clear buttons."""

    class AttachRequested(Message):
        """Posted when the user clicks the image attach button."""

    class ClearRequested(Message):
        """Posted when the user clicks the clear button."""

    def compose(self):  # type: ignore[override]
        with Horizontal(id="input_row"):
            yield Input(
                placeholder="Type your message... (/image <path>, /model, /clear)",
                id="message_input",
            )
            yield Button("Image", id="attach_button", variant="default")
            yield Button("Send", id="send_button", variant="success")
            yield Button("Clear", id="clear_button", variant="error")

    def set_send_enabled(self, enabled: bool) -> None:
        self.query_one("#send_button", Button).disabled = not enabled

    def on_button_pressed(self, event: Button.Pressed) -> None:
        """Forward attach and clear clicks; the send button bubbles to the app."""
        if event.button.id == "attach_button":
            event.stop()
            self.post_message(self.AttachRequested())
        elif event.button.id == "clear_button":
            event.stop()
            self.post_message(self.ClearRequested())
