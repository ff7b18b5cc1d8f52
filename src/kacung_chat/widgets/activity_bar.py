"""Activity bar showing request progress, its status line and shortcut hints."""

from __future__ import annotations

from typing import Any

from textual.app import ComposeResult
from textual.widgets import Label, ProgressBar, Static


class ActivityBar(Static):
    """Render the simulated response progress next to shortcut hints.

    The progress bar is only shown while the value is above zero.
    """

    DEFAULT_CSS = """
    ActivityBar {
        layout: horizontal;
        height: 1;
        padding: 0 1;
    }
    ActivityBar #activity_progress {
        width: 30;
    }
    ActivityBar #activity_status {
        width: 1fr;
        margin-left: 1;
    }
    ActivityBar #activity_hints {
        width: auto;
        text-align: right;
    }
    """

    def __init__(self, shortcut_hints: str = "", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._shortcut_hints = shortcut_hints
        self.progress = 0
        self.status = ""

    def compose(self) -> ComposeResult:
        bar = ProgressBar(total=100, show_eta=False, id="activity_progress")
        bar.display = False
        yield bar
        yield Label("", id="activity_status")
        yield Label(self._shortcut_hints, id="activity_hints")

    def set_shortcut_hints(self, hints: str) -> None:
        self._shortcut_hints = hints
        self.query_one("#activity_hints", Label).update(hints)

    def set_progress(self, value: int, status: str) -> None:
        """Show ``value`` (0-100) and ``status``; zero hides the bar."""
        self.progress = max(0, min(100, value))
        self.status = status
        bar = self.query_one("#activity_progress", ProgressBar)
        bar.update(progress=self.progress)
        bar.display = self.progress > 0
        self.query_one("#activity_status", Label).update(status)
