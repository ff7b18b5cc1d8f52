"""Plain data shapes for chat turns and image attachments."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
import mimetypes
from pathlib import Path
from typing import Literal
from uuid import uuid4

Role = Literal["system", "user", "assistant"]
VALID_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})


class UploadPhase(str, Enum):
    """Lifecycle of a single image attachment."""

    PENDING = "pending"
    CONVERTING = "converting"
    UPLOADING = "uploading"
    COMPLETE = "complete"
    FAILED = "failed"


def new_attachment_id() -> str:
    """Return an opaque token unique within the session."""
    return uuid4().hex[:12]


@dataclass(frozen=True)
class ImageAttachment:
    """One uploaded image and its derived description.

    Values are immutable; the upload pipeline swaps in updated copies keyed
    by ``id`` so several uploads can progress independently.
    """

    id: str
    name: str = ""
    data_url: str = ""
    description: str | None = None
    phase: UploadPhase = UploadPhase.PENDING
    progress: int | None = 0
    status: str | None = "Starting..."

    @property
    def is_uploading(self) -> bool:
        return self.phase in {
            UploadPhase.PENDING,
            UploadPhase.CONVERTING,
            UploadPhase.UPLOADING,
        }

    @property
    def is_complete(self) -> bool:
        return self.phase == UploadPhase.COMPLETE


@dataclass(frozen=True)
class Message:
    """A single chat turn as stored in the conversation log.

    ``hidden`` marks synthesized context (image analysis notes) that stays in
    the log so later turns keep it, but is never rendered.
    """

    role: Role
    content: str
    images: tuple[ImageAttachment, ...] = ()
    hidden: bool = False

    def __post_init__(self) -> None:
        if self.role not in VALID_ROLES:
            raise ValueError(f"Unsupported message role {self.role!r}.")
        if self.images and self.role != "user":
            raise ValueError("Only user messages may carry images.")

    def to_wire(self) -> dict[str, str]:
        """Return exactly the fields the remote completion service accepts."""
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class PendingTurn:
    """A submitted turn whose assistant reply has not arrived yet.

    Built before the optimistic append so the reply can be committed without
    popping anything back off the visible log.
    """

    user_message: Message
    analysis_message: Message | None
    log_index: int
    generation: int

    def attempted(self) -> list[Message]:
        """Return the messages kept in the log when no reply arrives."""
        messages: list[Message] = []
        if self.analysis_message is not None:
            messages.append(self.analysis_message)
        messages.append(self.user_message)
        return messages

    def committed(self, assistant_message: Message) -> list[Message]:
        """Return the messages that replace the optimistic user slot."""
        return [*self.attempted(), assistant_message]


@dataclass(frozen=True)
class ImageSource:
    """A selected or pasted file waiting to be uploaded."""

    name: str
    mime_type: str
    size: int
    reader: Callable[[], bytes] = field(repr=False, compare=False)

    def read(self) -> bytes:
        return self.reader()

    @classmethod
    def from_path(cls, path: str | Path) -> ImageSource:
        """Describe a file on disk; raises ``OSError`` when it cannot be stat'ed."""
        resolved = Path(path).expanduser()
        size = resolved.stat().st_size
        mime_type, _ = mimetypes.guess_type(resolved.name)
        return cls(
            name=resolved.name,
            mime_type=mime_type or "application/octet-stream",
            size=size,
            reader=resolved.read_bytes,
        )

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str, name: str = "pasted") -> ImageSource:
        return cls(name=name, mime_type=mime_type, size=len(data), reader=lambda: data)
