"""Domain exception hierarchy for the Kacung chat client."""

from __future__ import annotations


class KacungChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class ConfigValidationError(KacungChatError):
    """Raised when configuration cannot be validated safely."""


class ProviderError(KacungChatError):
    """Raised when a hosted model provider request fails.

    The message is always a single human-readable string suitable for
    showing to the user as-is.
    """


class CompletionError(ProviderError):
    """Raised when the chat completion request fails."""


class VisionError(ProviderError):
    """Raised when the image description request fails."""


class AttachmentValidationError(KacungChatError):
    """Raised when a selected file cannot be attached as an image."""
