"""Live progress reporting: one editable status message per sender."""

from __future__ import annotations

import enum
import html
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from apexclaw.context_store import ContextStore
from apexclaw.messaging import MessagingOps

if TYPE_CHECKING:
    from apexclaw.session_registry import SessionRegistry

LOGGER = logging.getLogger(__name__)

PROGRESS_STATES = ("running", "success", "failure", "retry")

_SENTINEL_FIELD_LIMIT = 200
_DETAIL_LINE_WIDTH = 60
_DETAIL_MAX_LINES = 3
_AUTO_DETAIL_LIMIT = 80
_AUTO_DETAIL_KEYS = ("cmd", "url", "path", "query", "peer", "text", "file_path", "name")
# These tools report their own progress.
_SELF_REPORTING_TOOLS = frozenset({"progress", "deep_work"})


class ProgressPhase(enum.Enum):
    SENDING = "sending"
    LIVE = "live"


@dataclass(slots=True)
class _ProgressEntry:
    chat_id: int
    phase: ProgressPhase
    message_id: int | None = None


def progress_sentinel(message: str, percent: int, state: str, detail: str) -> str:
    """Out-of-band stream chunk carrying a progress update."""

    payload = json.dumps(
        {
            "message": message[:_SENTINEL_FIELD_LIMIT],
            "percent": percent,
            "state": state,
            "detail": detail[:_SENTINEL_FIELD_LIMIT],
        }
    )
    return f"\x00PROGRESS:{payload}\x00"


def render_progress(message: str, state: str, detail: str) -> str:
    text = f"[{state}] <b>{html.escape(message, quote=False)}</b>"
    if detail and detail != "(no output)":
        for line in _wrap(detail):
            text += f"\n<code>{html.escape(line, quote=False)}</code>"
    return text


def _wrap(detail: str) -> list[str]:
    flat = detail.replace("\n", " ")
    lines = [flat[i : i + _DETAIL_LINE_WIDTH] for i in range(0, len(flat), _DETAIL_LINE_WIDTH)]
    return lines[:_DETAIL_MAX_LINES]


class ProgressSink:
    """Maintains the live progress message for each sender.

    Per sender the message moves Idle -> Sending -> Live -> (edits) -> cleared.
    While the first send is in flight further updates are dropped so a burst
    of updates never produces duplicate messages.
    """

    def __init__(
        self,
        messaging: MessagingOps | None,
        contexts: ContextStore,
        sessions: SessionRegistry | None = None,
    ) -> None:
        self._messaging = messaging
        self._contexts = contexts
        self._sessions = sessions
        self._lock = threading.Lock()
        self._entries: dict[str, _ProgressEntry] = {}

    def phase(self, sender_id: str) -> ProgressPhase | None:
        with self._lock:
            entry = self._entries.get(sender_id)
            return entry.phase if entry else None

    async def send_progress(
        self,
        sender_id: str,
        percent: int,
        message: str,
        state: str,
        detail: str = "",
        stream_callback: Callable[[str], None] | None = None,
    ) -> int | None:
        """Publish a progress update. Returns the live message id, if any."""

        callback = stream_callback or self._stream_callback(sender_id)
        if callback is not None:
            callback(progress_sentinel(message, percent, state, detail))

        context = self._contexts.get(sender_id)
        if self._messaging is None or context is None or not context.telegram_id:
            return None
        chat_id = context.telegram_id
        text = render_progress(message, state, detail)

        with self._lock:
            entry = self._entries.get(sender_id)
            if entry is not None and entry.chat_id == chat_id:
                if entry.phase is ProgressPhase.SENDING:
                    return None
                live_id = entry.message_id
            else:
                entry = _ProgressEntry(chat_id=chat_id, phase=ProgressPhase.SENDING)
                self._entries[sender_id] = entry
                live_id = None

        if live_id is not None:
            try:
                await self._messaging.edit_message(chat_id, live_id, text)
            except Exception:  # noqa: BLE001
                LOGGER.warning("Progress edit failed for %s", sender_id, exc_info=True)
            return live_id

        try:
            new_id = await self._messaging.send_message(chat_id, text)
        except Exception:  # noqa: BLE001
            LOGGER.warning("Progress send failed for %s", sender_id, exc_info=True)
            with self._lock:
                if self._entries.get(sender_id) is entry:
                    del self._entries[sender_id]
            return None

        with self._lock:
            if self._entries.get(sender_id) is entry:
                entry.phase = ProgressPhase.LIVE
                entry.message_id = new_id
        context.progress_message_id = new_id
        return new_id

    async def auto_progress(
        self,
        sender_id: str,
        tool_name: str,
        arguments: dict[str, str],
        state: str,
        stream_callback: Callable[[str], None] | None = None,
    ) -> None:
        """One-line update the agent loop emits around each tool execution."""

        if tool_name in _SELF_REPORTING_TOOLS:
            return
        detail = ""
        for key in _AUTO_DETAIL_KEYS:
            value = arguments.get(key)
            if value:
                detail = value if len(value) <= _AUTO_DETAIL_LIMIT else value[:_AUTO_DETAIL_LIMIT] + "..."
                break
        await self.send_progress(sender_id, 0, tool_name, state, detail, stream_callback)

    async def clear(self, sender_id: str) -> None:
        """Delete the live progress message once the final reply went out."""

        with self._lock:
            entry = self._entries.pop(sender_id, None)
        context = self._contexts.get(sender_id)
        if context is not None:
            context.progress_message_id = None
        if entry is None or entry.message_id is None or self._messaging is None:
            return
        try:
            await self._messaging.delete_message(entry.chat_id, entry.message_id)
        except Exception:  # noqa: BLE001
            LOGGER.warning("Could not delete progress message for %s", sender_id, exc_info=True)

    def _stream_callback(self, sender_id: str) -> Callable[[str], None] | None:
        if self._sessions is None:
            return None
        session = self._sessions.find(sender_id)
        return session.stream_callback if session is not None else None
