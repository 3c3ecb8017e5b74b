"""Core domain models used across layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal

Role = Literal["user", "assistant", "system"]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One entry of a session history. Never mutated once appended."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class Attachment:
    """A local file sent to the model alongside a user message."""

    path: str
    content_type: str = "application/octet-stream"
    filename: str = ""


@dataclass(slots=True)
class InboundMessage:
    """Message normalized by the transport adapter for the dispatcher."""

    chat_id: int
    sender_id: str
    text: str
    timestamp: datetime
    message_id: int = 0
    is_private: bool = True
    reply_to_msg_id: int | None = None
    replied_to_user_id: str | None = None
    replied_to_bot: bool = False
    callback_data: str | None = None
    file_path: str | None = None
    attachments: list[Attachment] = field(default_factory=list)


@dataclass(slots=True)
class ScheduledTask:
    """A persisted heartbeat task. Field names are the on-disk JSON schema."""

    label: str
    prompt: str
    run_at: str
    id: str = ""
    repeat: str = ""
    owner_id: str = ""
    telegram_id: int = 0
    message_id: int = 0
    group_id: int = 0
    created_at: str = ""
    scheduled_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
