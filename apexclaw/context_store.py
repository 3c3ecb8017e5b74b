"""Per-sender conversational side channel shared between dispatcher and tools."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(slots=True)
class MessageContext:
    """Where the current invocation for a sender came from."""

    telegram_id: int
    sender_id: str
    owner_id: str = ""
    message_id: int = 0
    chat_type: str = "private"
    reply_to_msg_id: int | None = None
    replied_to_user_id: str | None = None
    group_id: int | None = None
    file_path: str | None = None
    callback_data: str | None = None
    progress_message_id: int | None = None


class ContextStore:
    """Latest MessageContext per sender, overwritten before every invocation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._contexts: dict[str, MessageContext] = {}

    def set(self, sender_id: str, context: MessageContext) -> None:
        with self._lock:
            self._contexts[sender_id] = context

    def get(self, sender_id: str) -> MessageContext | None:
        with self._lock:
            return self._contexts.get(sender_id)

    def clear(self, sender_id: str) -> None:
        with self._lock:
            self._contexts.pop(sender_id, None)


def format_context(context: MessageContext) -> str:
    """Render the ``[TG Context: ...]`` header prefixed to the user's text."""

    fields = [
        ("sender_id", context.sender_id),
        ("chat_id", context.telegram_id),
        ("msg_id", context.message_id or None),
        ("group_id", context.group_id),
        ("reply_id", context.reply_to_msg_id),
        ("reply_sender_id", context.replied_to_user_id),
        ("file_path", context.file_path),
        ("callback_data", context.callback_data),
    ]
    rendered = " | ".join(f"{key}={value}" for key, value in fields if value not in (None, ""))
    return f"[TG Context: {rendered}]"
