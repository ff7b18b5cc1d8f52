"""Top-level package for kacung-chat."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import KacungChatApp
    from .config import ensure_config_dir, load_config
    from .context import assemble_context, build_image_analysis_message
    from .exceptions import (
        AttachmentValidationError,
        CompletionError,
        ConfigValidationError,
        KacungChatError,
        ProviderError,
        VisionError,
    )
    from .managers import ConversationController, ImageUploadPipeline
    from .math_format import normalize_math
    from .models import ImageAttachment, Message, UploadPhase
    from .state import ConversationState, StateManager

__all__ = [
    "AttachmentValidationError",
    "CompletionError",
    "ConfigValidationError",
    "ConversationController",
    "ConversationState",
    "ImageAttachment",
    "ImageUploadPipeline",
    "KacungChatApp",
    "KacungChatError",
    "Message",
    "ProviderError",
    "StateManager",
    "UploadPhase",
    "VisionError",
    "assemble_context",
    "build_image_analysis_message",
    "ensure_config_dir",
    "load_config",
    "normalize_math",
]

_EXCEPTIONS = {
    "AttachmentValidationError",
    "CompletionError",
    "ConfigValidationError",
    "KacungChatError",
    "ProviderError",
    "VisionError",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols to keep the UI dependencies optional at import time."""
    if name in _EXCEPTIONS:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"ensure_config_dir", "load_config"}:
        from . import config

        return getattr(config, name)
    if name in {"assemble_context", "build_image_analysis_message"}:
        from . import context

        return getattr(context, name)
    if name in {"ConversationController", "ImageUploadPipeline"}:
        from . import managers

        return getattr(managers, name)
    if name == "normalize_math":
        from .math_format import normalize_math

        return normalize_math
    if name in {"ImageAttachment", "Message", "UploadPhase"}:
        from . import models

        return getattr(models, name)
    if name in {"ConversationState", "StateManager"}:
        from . import state

        return getattr(state, name)
    if name == "KacungChatApp":
        from .app import KacungChatApp

        return KacungChatApp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
