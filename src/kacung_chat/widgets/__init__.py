"""Widget exports for kacung_chat UI."""

from .activity_bar import ActivityBar
from .attachment_tray import AttachmentTray
from .conversation import ConversationView
from .input_box import InputBox
from .message import MessageBubble
from .status_bar import StatusBar

__all__ = [
    "ActivityBar",
    "AttachmentTray",
    "ConversationView",
    "InputBox",
    "MessageBubble",
    "StatusBar",
]
