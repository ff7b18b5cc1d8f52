"""Modal screens for the model picker and the image path prompt."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from textual.app import ComposeResult
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import Input, OptionList, Static
from textual.widgets.option_list import Option


class ModelPickerScreen(ModalScreen[str | None]):
    """Modal picker that returns the selected model key.

    ``labels`` maps model keys to display labels; the current model is
    marked and highlighted on open.
    """

    CSS = """
    ModelPickerScreen {
        align: center middle;
    }

    #picker-dialog {
        width: 60;
        max-height: 24;
        padding: 1 2;
        border: round $panel;
        background: $surface;
    }

    #picker-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #picker-help {
        padding-top: 1;
    }
    """

    def __init__(self, labels: Mapping[str, str], current: str = "") -> None:
        super().__init__()
        self._keys = list(labels)
        self._labels = dict(labels)
        self._current = current

    def compose(self) -> ComposeResult:
        options = [
            Option(
                f"{self._labels[key]}{'  (current)' if key == self._current else ''}",
                id=key,
            )
            for key in self._keys
        ]
        with Container(id="picker-dialog"):
            yield Static("Select model", id="picker-title")
            yield OptionList(*options, id="picker-options")
            yield Static("Enter/click to select | Esc to cancel", id="picker-help")

    def on_mount(self) -> None:
        option_list = self.query_one("#picker-options", OptionList)
        if self._current in self._keys:
            option_list.highlighted = self._keys.index(self._current)
        option_list.focus()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        key = event.option.id
        if key in self._labels:
            self.dismiss(key)

    def on_key(self, event: Any) -> None:  # noqa: ANN401
        if str(getattr(event, "key", "")).lower() == "escape":
            self.dismiss(None)


class ImageAttachScreen(ModalScreen[str | None]):
    """Modal for collecting an image path to upload."""

    CSS = """
    ImageAttachScreen {
        align: center middle;
    }

    #image-attach-dialog {
        width: 60;
        padding: 1 3;
        border: round $panel;
        background: $surface;
    }

    #image-attach-title {
        padding-bottom: 1;
        text-style: bold;
    }

    #image-attach-input {
        width: 100%;
        margin: 1 0;
    }

    #image-attach-help {
        padding-top: 1;
        text-align: center;
    }
    """

    def compose(self) -> ComposeResult:
        with Container(id="image-attach-dialog"):
            yield Static("Attach image (max 10MB)", id="image-attach-title")
            yield Input(
                placeholder="Enter absolute or relative image path...",
                id="image-attach-input",
            )
            yield Static("Enter to confirm  |  Esc to cancel", id="image-attach-help")

    def on_mount(self) -> None:
        self.query_one("#image-attach-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "image-attach-input":
            return
        event.stop()
        value = event.value.strip()
        self.dismiss(value if value else None)

    def on_key(self, event: Any) -> None:  # noqa: ANN401
        if str(getattr(event, "key", "")).lower() == "escape":
            self.dismiss(None)
