"""Status bar widget for model and conversation telemetry."""

from __future__ import annotations

from textual import events
from textual.app import ComposeResult
from textual.message import Message
from textual.widgets import Label, Static

STATE_ICONS = {
    "IDLE": "🟢",
    "AWAITING_RESPONSE": "🟡",
    "ERROR": "🔴",
}


class StatusBar(Static):
    """Render compact runtime status information.

    Segments (left to right):
        🟢 idle  |  Model: Kacung V1  |  Messages: 4  |  Images: 1
    Clicking anywhere on the bar opens the model picker.
    """

    DEFAULT_CSS = """
    StatusBar {
        layout: horizontal;
        height: auto;
    }
    StatusBar Label {
        margin-right: 1;
    }
    """

    class ModelPickerRequested(Message):
        """Posted when the status bar is clicked."""

    def compose(self) -> ComposeResult:
        yield Label("🟢 idle", id="status_state")
        yield Label("|")
        yield Label("Model: -", id="status_model")
        yield Label("|")
        yield Label("Messages: 0", id="status_messages")
        yield Label("|")
        yield Label("Images: 0", id="status_images")

    def on_mount(self) -> None:
        """Cache label references once after the DOM is ready."""
        self._lbl_state = self.query_one("#status_state", Label)
        self._lbl_model = self.query_one("#status_model", Label)
        self._lbl_messages = self.query_one("#status_messages", Label)
        self._lbl_images = self.query_one("#status_images", Label)

    @staticmethod
    def format_state(state: str) -> str:
        icon = STATE_ICONS.get(state, "⚪")
        return f"{icon} {state.lower().replace('_', ' ')}"

    def set_status(
        self,
        *,
        state: str,
        model_label: str,
        message_count: int,
        image_count: int = 0,
    ) -> None:
        self._lbl_state.update(self.format_state(state))
        self._lbl_model.update(f"Model: {model_label}")
        self._lbl_messages.update(f"Messages: {message_count}")
        self._lbl_images.update(f"Images: {image_count}")

    def on_click(self, event: events.Click) -> None:
        event.stop()
        self.post_message(self.ModelPickerRequested())
