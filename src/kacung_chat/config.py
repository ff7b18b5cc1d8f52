"""Configuration loading and validation for the Kacung chat client."""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
import logging
import os
from pathlib import Path
import re
from typing import Any
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .context import DEFAULT_PERSONA_PROMPT
from .exceptions import ConfigValidationError

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "kacung-chat"
CONFIG_PATH = CONFIG_DIR / "config.toml"

HEX_COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")
VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
MODEL_KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")

TEN_MIB = 10 * 1024 * 1024


def _require_non_empty(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


def _validate_http_url(value: str, field_name: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme.lower() not in {"http", "https"}:
        raise ValueError(f"{field_name} must use http or https scheme.")
    if not parsed.hostname:
        raise ValueError(f"{field_name} must include a hostname.")
    return value.rstrip("/")


class AppConfig(BaseModel):
    """Application metadata and terminal integration options."""

    model_config = ConfigDict(populate_by_name=True)
    title: str = "Kacung"
    window_class: str = Field(default="kacung-chat", alias="class")

    @field_validator("title", "window_class", mode="before")
    @classmethod
    def _validate_non_empty_string(cls, value: Any) -> str:
        return _require_non_empty(value)


class OpenRouterConfig(BaseModel):
    """Chat completion provider settings.

    ``models`` maps the short model keys offered in the picker to provider
    model ids; the first key is the default selection.
    """

    base_url: str = "https://openrouter.ai/api/v1"
    api_key: str = ""
    api_key_env: str = "OPENROUTER_API_KEY"
    referer: str = "http://localhost:3000"
    app_title: str = "AI Chatbot"
    timeout: int = Field(default=120, ge=1, le=3600)
    models: dict[str, str] = Field(
        default_factory=lambda: {
            "mistral": "mistralai/devstral-2512:free",
            "gemma": "xiaomi/mimo-v2-flash:free",
        }
    )
    model_labels: dict[str, str] = Field(
        default_factory=lambda: {"mistral": "Kacung V1", "gemma": "Kacung V2"}
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1, le=262_144)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    frequency_penalty: float = Field(default=0.5, ge=-2.0, le=2.0)
    presence_penalty: float = Field(default=0.3, ge=-2.0, le=2.0)

    @field_validator("base_url", "referer", mode="before")
    @classmethod
    def _validate_url(cls, value: Any) -> str:
        return _validate_http_url(_require_non_empty(value), "openrouter url")

    @field_validator("api_key", mode="before")
    @classmethod
    def _normalize_api_key(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("api_key must be a string.")
        return value.strip()

    @field_validator("api_key_env", "app_title", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        return _require_non_empty(value)

    @field_validator("models", mode="before")
    @classmethod
    def _validate_models(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, dict) or not value:
            raise ValueError("models must be a non-empty table of key -> model id.")
        models: dict[str, str] = {}
        for key, model_id in value.items():
            if not isinstance(key, str) or not MODEL_KEY_PATTERN.match(key.strip()):
                raise ValueError(f"Invalid model key {key!r}.")
            models[key.strip()] = _require_non_empty(model_id)
        return models

    @field_validator("model_labels", mode="before")
    @classmethod
    def _validate_labels(cls, value: Any) -> dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("model_labels must be a table of key -> label.")
        return {str(k).strip(): _require_non_empty(v) for k, v in value.items()}

    @model_validator(mode="after")
    def _fill_missing_labels(self) -> OpenRouterConfig:
        labels = {key: self.model_labels.get(key, key) for key in self.models}
        self.model_labels = labels
        return self


class VisionConfig(BaseModel):
    """Image description provider settings."""

    base_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    model: str = "gemini-1.5-flash"
    api_key: str = ""
    api_key_env: str = "GEMINI_API_KEY"
    timeout: int = Field(default=120, ge=1, le=3600)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2000, ge=1, le=65_536)

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_url(cls, value: Any) -> str:
        return _validate_http_url(_require_non_empty(value), "vision.base_url")

    @field_validator("model", "api_key_env", mode="before")
    @classmethod
    def _validate_required_string(cls, value: Any) -> str:
        return _require_non_empty(value)

    @field_validator("api_key", mode="before")
    @classmethod
    def _normalize_api_key(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("api_key must be a string.")
        return value.strip()


class ChatConfig(BaseModel):
    """Conversation behaviour: persona and simulated response progress."""

    persona_prompt: str = DEFAULT_PERSONA_PROMPT
    progress_interval_seconds: float = Field(default=0.5, gt=0.0, le=60.0)
    progress_cap: int = Field(default=85, ge=25, le=99)
    progress_reset_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)

    @field_validator("persona_prompt", mode="before")
    @classmethod
    def _validate_prompt(cls, value: Any) -> str:
        return _require_non_empty(value)


class UploadsConfig(BaseModel):
    """Image upload limits and simulated upload progress."""

    max_image_bytes: int = Field(default=TEN_MIB, ge=1, le=100 * 1024 * 1024)
    progress_interval_seconds: float = Field(default=0.3, gt=0.0, le=60.0)
    progress_cap: int = Field(default=80, ge=40, le=99)
    status_reset_delay_seconds: float = Field(default=2.0, ge=0.0, le=60.0)


class UIConfig(BaseModel):
    """Visual settings for Textual rendering."""

    show_timestamps: bool = True
    user_message_color: str = "#3b82f6"
    assistant_message_color: str = "#1e293b"
    error_color: str = "#ef4444"

    @field_validator(
        "user_message_color",
        "assistant_message_color",
        "error_color",
        mode="before",
    )
    @classmethod
    def _validate_hex_color(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        normalized = value.strip()
        if not HEX_COLOR_PATTERN.match(normalized):
            raise ValueError("Color must use #RGB or #RRGGBB format.")
        return normalized


class KeybindsConfig(BaseModel):
    """Keyboard action mapping."""

    send_message: str = "ctrl+enter"
    clear_conversation: str = "ctrl+n"
    quit: str = "ctrl+q"
    toggle_model_picker: str = "ctrl+m"
    attach_image: str = "ctrl+o"
    scroll_up: str = "ctrl+k"
    scroll_down: str = "ctrl+j"

    @field_validator("*", mode="before")
    @classmethod
    def _validate_keybind(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Keybind must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("Keybind must not be empty.")
        return normalized


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/kacung-chat/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("log_file_path must not be empty.")
        return normalized


class SettingsConfig(BaseModel):
    """Where user preferences (last-selected model) are stored.

    An empty ``path`` means the platform user state directory.
    """

    path: str = ""

    @field_validator("path", mode="before")
    @classmethod
    def _normalize_path(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("settings.path must be a string.")
        return value.strip()


class Config(BaseModel):
    """Root configuration model for all sections."""

    model_config = ConfigDict(populate_by_name=True)
    app: AppConfig = AppConfig()
    openrouter: OpenRouterConfig = OpenRouterConfig()
    vision: VisionConfig = VisionConfig()
    chat: ChatConfig = ChatConfig()
    uploads: UploadsConfig = UploadsConfig()
    ui: UIConfig = UIConfig()
    keybinds: KeybindsConfig = KeybindsConfig()
    logging: LoggingConfig = LoggingConfig()
    settings: SettingsConfig = SettingsConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump(by_alias=True)


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values.

    Provider model tables are replaced wholesale so that a user-defined
    ``models`` table does not inherit the default keys.
    """
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(value, dict)
            and key not in {"models", "model_labels"}
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    """Return a deep copy of validated default config data."""
    return deepcopy(DEFAULT_CONFIG)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump(by_alias=True)
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def _apply_environment(
    config: dict[str, dict[str, Any]], environ: Mapping[str, str]
) -> dict[str, dict[str, Any]]:
    """Fill empty provider settings from environment variables."""
    openrouter = config["openrouter"]
    if not openrouter["api_key"]:
        openrouter["api_key"] = environ.get(openrouter["api_key_env"], "").strip()
    base_url = environ.get("OPENROUTER_BASE_URL", "").strip()
    if base_url and openrouter["base_url"] == DEFAULT_CONFIG["openrouter"]["base_url"]:
        try:
            openrouter["base_url"] = _validate_http_url(base_url, "OPENROUTER_BASE_URL")
        except ValueError as exc:
            LOGGER.warning("Ignoring OPENROUTER_BASE_URL: %s", exc)
    referer = environ.get("APP_URL", "").strip()
    if referer and openrouter["referer"] == DEFAULT_CONFIG["openrouter"]["referer"]:
        openrouter["referer"] = referer

    vision = config["vision"]
    if not vision["api_key"]:
        vision["api_key"] = environ.get(vision["api_key_env"], "").strip()
    return config


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, validate, and apply
    provider credentials from the environment.

    The optional ``config_path`` and ``environ`` arguments are intended for
    tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (
            Exception
        ) as exc:  # noqa: BLE001 - we must not crash on invalid user config.
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = (
        _deep_merge(DEFAULT_CONFIG, raw_data)
        if isinstance(raw_data, dict)
        else _safe_default_config()
    )
    validated = _validate_config(merged)
    return _apply_environment(validated, os.environ if environ is None else environ)


def _key_prefix(api_key: str) -> str | None:
    return f"{api_key[:12]}..." if api_key else None


def describe_provider_setup(config: dict[str, dict[str, Any]]) -> dict[str, Any]:
    """Summarize provider credentials without revealing full API keys."""
    openrouter = config["openrouter"]
    vision = config["vision"]
    return {
        "openrouter": {
            "api_key_configured": bool(openrouter["api_key"]),
            "api_key_prefix": _key_prefix(openrouter["api_key"]),
            "base_url": openrouter["base_url"],
            "models": dict(openrouter["models"]),
        },
        "vision": {
            "api_key_configured": bool(vision["api_key"]),
            "api_key_prefix": _key_prefix(vision["api_key"]),
            "model": vision["model"],
        },
    }
