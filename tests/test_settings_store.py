"""Tests for the persisted model preference."""

from __future__ import annotations

import json
from pathlib import Path
import tempfile
import unittest

from kacung_chat.settings_store import SettingsStore


class SettingsStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self._temp_dir.name) / "state" / "settings.json"

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def _store(self) -> SettingsStore:
        return SettingsStore(["mistral", "gemma"], path=self.path)

    def test_defaults_to_first_option_without_file(self) -> None:
        self.assertEqual(self._store().load(), "mistral")

    def test_select_model_persists_across_instances(self) -> None:
        store = self._store()
        store.load()
        store.select_model("gemma")
        self.assertEqual(
            json.loads(self.path.read_text(encoding="utf-8")),
            {"selected_model": "gemma"},
        )
        self.assertEqual(self._store().load(), "gemma")

    def test_unknown_model_rejected(self) -> None:
        store = self._store()
        with self.assertRaises(ValueError):
            store.select_model("gpt-9")
        self.assertEqual(store.selected_model, "mistral")
        self.assertFalse(self.path.exists())

    def test_stale_saved_model_falls_back(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"selected_model": "removed"}), encoding="utf-8")
        self.assertEqual(self._store().load(), "mistral")

    def test_corrupt_file_falls_back_with_warning(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")
        with self.assertLogs("kacung_chat.settings_store", level="WARNING") as logs:
            self.assertEqual(self._store().load(), "mistral")
        self.assertTrue(any("settings.load.failed" in line for line in logs.output))

    def test_empty_options_rejected(self) -> None:
        with self.assertRaises(ValueError):
            SettingsStore([], path=self.path)


if __name__ == "__main__":
    unittest.main()
