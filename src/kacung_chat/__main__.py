"""CLI entrypoint for Kacung chat."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from importlib import metadata
import json
from pathlib import Path

from .config import describe_provider_setup, ensure_config_dir, load_config
from .settings_store import SettingsStore

DISTRIBUTION_NAME = "kacung-chat"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kacung",
        description="Kacung - terminal chat client for hosted language and vision models",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Print provider setup (without full API keys) and exit",
    )
    return parser


def _check_config() -> int:
    config = load_config()
    summary = describe_provider_setup(config)
    settings_path = str(config["settings"]["path"]).strip()
    settings = SettingsStore(
        list(config["openrouter"]["models"]),
        path=Path(settings_path).expanduser() if settings_path else None,
    )
    summary["selected_model"] = settings.load()
    print(json.dumps(summary, indent=2))
    return 0 if summary["openrouter"]["api_key_configured"] else 1


def main(argv: Sequence[str] | None = None) -> int:
    """Ensure configuration exists, handle CLI flags, and run the TUI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version(DISTRIBUTION_NAME)
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"kacung {version}")
        return 0

    if args.check_config:
        return _check_config()

    ensure_config_dir()
    from .app import KacungChatApp

    app = KacungChatApp()
    app.run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
