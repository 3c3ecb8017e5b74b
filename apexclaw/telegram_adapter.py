"""Telegram Bot API adapter."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx

from apexclaw.messaging import MessagingOps
from apexclaw.models import Attachment, InboundMessage

LOGGER = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4096
_RETRY_DELAY_SECONDS = 5.0


class TelegramError(RuntimeError):
    """The Bot API answered with ``ok: false``."""


class TelegramAdapter(MessagingOps):
    """Long-polling Bot API client that also implements MessagingOps."""

    def __init__(
        self,
        token: str,
        poll_timeout_seconds: int = 30,
        download_dir: Path | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._poll_timeout_seconds = poll_timeout_seconds
        self._download_dir = download_dir or Path.home() / ".apexclaw" / "files"
        self._client = httpx.AsyncClient(
            base_url=f"{TELEGRAM_API_URL}/bot{token}",
            timeout=httpx.Timeout(poll_timeout_seconds + 10.0),
            transport=transport,
        )
        self._offset = 0
        self._bot_id: int | None = None

    async def close(self) -> None:
        await self._client.aclose()

    async def poll_messages(self) -> AsyncIterator[InboundMessage]:
        """Long-poll getUpdates and yield normalized messages."""

        while True:
            try:
                updates = await self.get_updates()
            except (httpx.HTTPError, TelegramError) as exc:
                LOGGER.warning("getUpdates failed: %s", exc)
                await asyncio.sleep(_RETRY_DELAY_SECONDS)
                continue
            for update in updates:
                try:
                    message = await self._handle_update(update)
                except (KeyError, TypeError, ValueError) as exc:
                    LOGGER.warning("Skipping malformed update %s: %s", update.get("update_id"), exc)
                    continue
                if message is not None:
                    yield message

    async def get_updates(self) -> list[dict[str, Any]]:
        """Fetch the next batch of updates and advance the offset past it."""

        updates = await self._call(
            "getUpdates",
            {
                "offset": self._offset,
                "timeout": self._poll_timeout_seconds,
                "allowed_updates": ["message", "callback_query"],
            },
        )
        for update in updates:
            self._offset = max(self._offset, int(update["update_id"]) + 1)
        return updates

    async def send_message(self, chat_id: int, text: str, reply_to: int | None = None) -> int:
        message_id = 0
        for chunk in split_message(text):
            payload: dict[str, Any] = {"chat_id": chat_id, "text": chunk, "parse_mode": "HTML"}
            if reply_to:
                payload["reply_parameters"] = {"message_id": reply_to, "allow_sending_without_reply": True}
            try:
                result = await self._call("sendMessage", payload)
            except TelegramError as exc:
                # Usually malformed HTML from the model; resend as plain text.
                LOGGER.warning("sendMessage with HTML failed (%s), retrying as plain text", exc)
                payload.pop("parse_mode")
                result = await self._call("sendMessage", payload)
            message_id = int(result["message_id"])
        return message_id

    async def edit_message(self, chat_id: int, message_id: int, text: str) -> None:
        await self._call(
            "editMessageText",
            {
                "chat_id": chat_id,
                "message_id": message_id,
                "text": text[:MAX_MESSAGE_LENGTH],
                "parse_mode": "HTML",
            },
        )

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def send_typing(self, chat_id: int) -> None:
        try:
            await self._call("sendChatAction", {"chat_id": chat_id, "action": "typing"})
        except (httpx.HTTPError, TelegramError) as exc:
            LOGGER.debug("sendChatAction failed: %s", exc)

    async def bot_id(self) -> int:
        if self._bot_id is None:
            me = await self._call("getMe", {})
            self._bot_id = int(me["id"])
        return self._bot_id

    async def _handle_update(self, update: dict[str, Any]) -> InboundMessage | None:
        callback = update.get("callback_query")
        if isinstance(callback, dict):
            try:
                await self._call("answerCallbackQuery", {"callback_query_id": callback["id"]})
            except (httpx.HTTPError, TelegramError) as exc:
                LOGGER.debug("answerCallbackQuery failed: %s", exc)
            return _callback_to_message(callback)

        try:
            bot_id = await self.bot_id()
        except (httpx.HTTPError, TelegramError) as exc:
            LOGGER.warning("getMe failed: %s", exc)
            bot_id = None
        message = _to_message(update, bot_id)
        if message is None:
            return None
        file_id = _file_id(update.get("message") or {})
        if file_id is not None:
            try:
                path = await self._download(file_id)
            except (httpx.HTTPError, TelegramError, OSError) as exc:
                LOGGER.warning("Could not download attachment %s: %s", file_id, exc)
            else:
                message.file_path = str(path)
                message.attachments.append(_attachment(update["message"], path))
        return message

    async def _download(self, file_id: str) -> Path:
        info = await self._call("getFile", {"file_id": file_id})
        remote_path = info["file_path"]
        response = await self._client.get(f"{TELEGRAM_API_URL}/file/bot{self._token}/{remote_path}")
        response.raise_for_status()
        self._download_dir.mkdir(parents=True, exist_ok=True)
        local_path = self._download_dir / f"{file_id}_{Path(remote_path).name}"
        await asyncio.to_thread(local_path.write_bytes, response.content)
        return local_path

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        response = await self._client.post(f"/{method}", json=payload)
        try:
            data = response.json()
        except ValueError as exc:
            raise TelegramError(f"{method}: HTTP {response.status_code} with non-JSON body") from exc
        if not isinstance(data, dict):
            raise TelegramError(f"{method}: HTTP {response.status_code} with unexpected body")
        if not data.get("ok"):
            raise TelegramError(f"{method}: {data.get('description', response.status_code)}")
        return data["result"]


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split ``text`` into chunks Telegram accepts, preferring line breaks."""

    chunks: list[str] = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:].lstrip("\n")
    if text or not chunks:
        chunks.append(text)
    return chunks


def _file_id(message: dict[str, Any]) -> str | None:
    document = message.get("document")
    if isinstance(document, dict) and document.get("file_id"):
        return str(document["file_id"])
    photos = message.get("photo")
    if isinstance(photos, list) and photos:
        # Sizes are ordered smallest first.
        return str(photos[-1]["file_id"])
    return None


def _attachment(message: dict[str, Any], path: Path) -> Attachment:
    document = message.get("document")
    if isinstance(document, dict):
        return Attachment(
            path=str(path),
            content_type=str(document.get("mime_type") or "application/octet-stream"),
            filename=str(document.get("file_name") or ""),
        )
    return Attachment(path=str(path), content_type="image/jpeg", filename=path.name)


def _callback_to_message(callback: dict[str, Any]) -> InboundMessage | None:
    message = callback.get("message")
    sender = callback.get("from")
    if not isinstance(message, dict) or not isinstance(sender, dict):
        return None
    chat = message.get("chat") or {}
    data = str(callback.get("data") or "")
    return InboundMessage(
        chat_id=int(chat["id"]),
        sender_id=str(sender["id"]),
        text=f"[Button clicked: {data}]",
        timestamp=datetime.now(timezone.utc),
        message_id=int(message.get("message_id") or 0),
        is_private=chat.get("type") == "private",
        callback_data=data,
    )


def _to_message(update: dict[str, Any], bot_id: int | None) -> InboundMessage | None:
    message = update.get("message")
    if not isinstance(message, dict):
        return None
    sender = message.get("from")
    chat = message.get("chat")
    if not isinstance(sender, dict) or not isinstance(chat, dict):
        return None

    text = message.get("text") or message.get("caption") or ""
    text = text.strip() if isinstance(text, str) else ""
    if not text and _file_id(message) is None:
        return None

    reply_to_msg_id = None
    replied_to_user_id = None
    replied_to_bot = False
    reply = message.get("reply_to_message")
    if isinstance(reply, dict):
        reply_to_msg_id = int(reply.get("message_id") or 0) or None
        reply_sender = reply.get("from")
        if isinstance(reply_sender, dict):
            replied_to_user_id = str(reply_sender["id"])
            replied_to_bot = bot_id is not None and int(reply_sender["id"]) == bot_id

    return InboundMessage(
        chat_id=int(chat["id"]),
        sender_id=str(sender["id"]),
        text=text,
        timestamp=datetime.fromtimestamp(int(message.get("date") or 0), tz=timezone.utc),
        message_id=int(message.get("message_id") or 0),
        is_private=chat.get("type") == "private",
        reply_to_msg_id=reply_to_msg_id,
        replied_to_user_id=replied_to_user_id,
        replied_to_bot=replied_to_bot,
    )
