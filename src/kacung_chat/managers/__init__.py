"""Manager classes that keep conversation logic out of the Textual app.

Available managers:
- ConversationController: submit/commit/fail/clear flow and the message log
- ImageUploadPipeline: image validation, description and attachment state
"""

from __future__ import annotations

from .attachment import ImageUploadPipeline
from .conversation import ConversationController

__all__ = [
    "ConversationController",
    "ImageUploadPipeline",
]
