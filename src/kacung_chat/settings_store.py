"""Persisted user preferences (the last-selected model key)."""

from __future__ import annotations

from collections.abc import Sequence
import json
import logging
import os
from pathlib import Path

from platformdirs import user_state_path

LOGGER = logging.getLogger(__name__)

APP_NAME = "kacung-chat"
SETTINGS_FILENAME = "settings.json"


def default_settings_path() -> Path:
    return user_state_path(APP_NAME) / SETTINGS_FILENAME


class SettingsStore:
    """Load-at-startup, save-on-change store for the selected model.

    The stored value is only honoured when it is one of ``model_options``;
    otherwise the first option is used.
    """

    def __init__(self, model_options: Sequence[str], path: Path | None = None) -> None:
        if not model_options:
            raise ValueError("SettingsStore needs at least one model option.")
        self.model_options: tuple[str, ...] = tuple(model_options)
        self.path = path or default_settings_path()
        self._selected_model = self.model_options[0]

    @property
    def selected_model(self) -> str:
        return self._selected_model

    def load(self) -> str:
        """Restore the saved model, falling back to the first option."""
        self._selected_model = self.model_options[0]
        if not self.path.exists():
            return self._selected_model
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning(
                "settings.load.failed",
                extra={
                    "event": "settings.load.failed",
                    "path": str(self.path),
                    "error": str(exc),
                },
            )
            return self._selected_model
        saved = payload.get("selected_model") if isinstance(payload, dict) else None
        if isinstance(saved, str) and saved in self.model_options:
            self._selected_model = saved
        else:
            LOGGER.info(
                "settings.model.ignored",
                extra={"event": "settings.model.ignored", "saved": saved},
            )
        return self._selected_model

    def select_model(self, model_key: str) -> str:
        """Switch the selected model and persist it immediately."""
        normalized = model_key.strip()
        if normalized not in self.model_options:
            raise ValueError(f"Unknown model {model_key!r}.")
        if normalized == self._selected_model and self.path.exists():
            return normalized
        self._selected_model = normalized
        self.save()
        return normalized

    def save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps({"selected_model": self._selected_model}, indent=2),
                encoding="utf-8",
            )
            if os.name == "posix":
                self.path.chmod(0o600)
        except OSError as exc:
            # Preference loss is not fatal; the session keeps the in-memory value.
            LOGGER.warning(
                "settings.save.failed",
                extra={
                    "event": "settings.save.failed",
                    "path": str(self.path),
                    "error": str(exc),
                },
            )
