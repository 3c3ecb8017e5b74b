"""Outbound messaging operations the core needs from the chat transport."""

from __future__ import annotations

from abc import ABC, abstractmethod


class MessagingOps(ABC):
    """Implemented by the transport adapter, injected into core components at startup."""

    @abstractmethod
    async def send_message(self, chat_id: int, text: str, reply_to: int | None = None) -> int:
        """Send an HTML message and return its message id."""

    @abstractmethod
    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        """Replace the text of a previously sent message."""

    @abstractmethod
    async def delete_message(self, chat_id: int, message_id: int) -> None:
        """Delete a previously sent message."""

    async def deliver(self, telegram_id: int, message_id: int, text: str) -> None:
        """Deliver a final reply, threaded under ``message_id`` when it is set."""

        await self.send_message(telegram_id, text, reply_to=message_id or None)

    async def send_typing(self, chat_id: int) -> None:
        """Show a typing indicator where the transport supports one."""
