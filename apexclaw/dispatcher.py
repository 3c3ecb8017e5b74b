"""Glue between the chat transport and agent sessions."""

from __future__ import annotations

import asyncio
import logging

from apexclaw.agent_session import AgentError, split_max_iterations
from apexclaw.commands import CommandDispatcher
from apexclaw.context_store import ContextStore, MessageContext, format_context
from apexclaw.messaging import MessagingOps
from apexclaw.models import InboundMessage
from apexclaw.progress import ProgressSink
from apexclaw.session_registry import SessionRegistry

LOGGER = logging.getLogger(__name__)

INTERACTIVE_TIMEOUT_SECONDS = 12 * 60.0
FLUSH_THRESHOLD = 800
BOT_MENTION = "apex"

_TOOL_MARKERS = ("__TOOL_CALL:", "__TOOL_RESULT:")
_PROGRESS_START = "\x00PROGRESS:"
_ERROR_REPLY = "⚠️ Something went wrong. Please try again."
_LIMIT_FALLBACK = "Hit iteration limit before completing the task."


def strip_progress(chunk: str) -> str:
    """Remove ``\\x00PROGRESS:...\\x00`` sentinels from a stream chunk."""

    while True:
        start = chunk.find(_PROGRESS_START)
        if start == -1:
            return chunk
        end = chunk.find("\x00", start + 1)
        if end == -1:
            return chunk[:start]
        chunk = chunk[:start] + chunk[end + 1 :]


class StreamBuffer:
    """Collects user-visible chunks of one run and sends them as chat messages.

    Tool markers and progress sentinels are dropped. A message boundary is
    placed after 800 buffered characters or after a chunk holding a blank line.
    """

    def __init__(
        self,
        messaging: MessagingOps,
        progress: ProgressSink,
        chat_id: int,
        reply_to: int | None,
        sender_id: str,
    ) -> None:
        self._messaging = messaging
        self._progress = progress
        self._chat_id = chat_id
        self._reply_to = reply_to
        self._sender_id = sender_id
        self._current: list[str] = []
        self._ready: list[str] = []

    def on_chunk(self, chunk: str) -> None:
        if chunk.startswith(_TOOL_MARKERS):
            return
        chunk = strip_progress(chunk).strip()
        if not chunk:
            return
        self._current.append(chunk)
        if sum(len(part) for part in self._current) >= FLUSH_THRESHOLD or "\n\n" in chunk:
            self._cut()

    async def flush(self) -> None:
        self._cut()
        ready, self._ready = self._ready, []
        for text in ready:
            try:
                await self._messaging.send_message(self._chat_id, text, reply_to=self._reply_to)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to send reply to chat %d", self._chat_id)

    async def done(self) -> None:
        """Clear the live progress message, then send whatever is buffered."""

        await self._progress.clear(self._sender_id)
        await self.flush()

    def _cut(self) -> None:
        if self._current:
            self._ready.append("".join(self._current))
            self._current = []


class Dispatcher:
    """Routes inbound messages to the sender's session and replies back."""

    def __init__(
        self,
        messaging: MessagingOps,
        sessions: SessionRegistry,
        contexts: ContextStore,
        progress: ProgressSink,
        commands: CommandDispatcher,
        allowed_users: frozenset[str],
        timeout_seconds: float = INTERACTIVE_TIMEOUT_SECONDS,
    ) -> None:
        self._messaging = messaging
        self._sessions = sessions
        self._contexts = contexts
        self._progress = progress
        self._commands = commands
        self._allowed_users = allowed_users
        self._timeout_seconds = timeout_seconds
        self._inflight: set[asyncio.Task[None]] = set()

    def spawn(self, message: InboundMessage) -> asyncio.Task[None]:
        """Handle ``message`` on its own task."""

        task = asyncio.create_task(self._guarded(message), name=f"dispatch-{message.sender_id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def drain(self) -> None:
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _guarded(self, message: InboundMessage) -> None:
        try:
            await self.handle_message(message)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Unhandled error while dispatching message from %s", message.sender_id)

    async def handle_message(self, message: InboundMessage) -> None:
        sender_id = message.sender_id
        if sender_id not in self._allowed_users:
            LOGGER.warning("Dropping message from unauthorized sender %s", sender_id)
            return

        text = message.text
        if message.callback_data is not None:
            text = f"[Button clicked: {message.callback_data}]"
        else:
            command_reply = await self._commands.dispatch(message)
            if command_reply is not None:
                await self._messaging.send_message(message.chat_id, command_reply, reply_to=message.message_id or None)
                return
            if not message.is_private and not self._addressed_to_bot(message):
                return

        LOGGER.info("Message from %s (chat %d): %r", sender_id, message.chat_id, text[:80])
        context = self._build_context(message)
        self._contexts.set(sender_id, context)
        prompt = f"{format_context(context)}\n{text}"

        session = self._sessions.get_or_create(sender_id)
        buffer = StreamBuffer(
            self._messaging,
            self._progress,
            message.chat_id,
            message.message_id or None,
            sender_id,
        )
        await self._messaging.send_typing(message.chat_id)
        try:
            if message.attachments:
                result = await session.run_stream_with_files(
                    sender_id, prompt, message.attachments, buffer.on_chunk, timeout=self._timeout_seconds
                )
            else:
                result = await session.run_stream(sender_id, prompt, buffer.on_chunk, timeout=self._timeout_seconds)
        except AgentError as exc:
            LOGGER.warning("Agent error for %s: %s", sender_id, exc)
            await buffer.done()
            await self._messaging.send_message(message.chat_id, _ERROR_REPLY, reply_to=message.message_id or None)
            return

        await buffer.done()
        hit_limit, explanation = split_max_iterations(result)
        if hit_limit:
            await self._messaging.send_message(
                message.chat_id,
                explanation or _LIMIT_FALLBACK,
                reply_to=message.message_id or None,
            )

    def _addressed_to_bot(self, message: InboundMessage) -> bool:
        return BOT_MENTION in message.text.lower() or message.replied_to_bot

    def _build_context(self, message: InboundMessage) -> MessageContext:
        return MessageContext(
            telegram_id=message.chat_id,
            sender_id=message.sender_id,
            owner_id=message.sender_id,
            message_id=message.message_id,
            chat_type="private" if message.is_private else "group/channel",
            reply_to_msg_id=message.reply_to_msg_id,
            replied_to_user_id=message.replied_to_user_id,
            group_id=None if message.is_private else message.chat_id,
            file_path=message.file_path,
            callback_data=message.callback_data,
        )
