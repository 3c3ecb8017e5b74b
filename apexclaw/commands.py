"""Slash commands handled without the model.

An unrecognised /command returns None, letting it fall through to the agent.
"""

from __future__ import annotations

import logging

from apexclaw.heartbeat import HeartbeatScheduler
from apexclaw.models import InboundMessage
from apexclaw.session_registry import SessionRegistry
from apexclaw.tools.registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

_HELP = (
    "👋 Hey, I'm ApexClaw.\n"
    "Chat normally, I have tools and I'll use them when needed.\n\n"
    "/reset - clear history\n"
    "/status - session info\n"
    "/tasks - list scheduled tasks\n"
    "/tools - list tools"
)


def parse_command(text: str) -> tuple[str, list[str]] | None:
    """Split a /-prefixed message into (command, args).

    Returns:
        A (command, args) tuple where command is lowercased and stripped of any
        ``@botname`` suffix, or None if text is not a command.
    """
    text = text.strip()
    if not text.startswith("/"):
        return None
    parts = text[1:].split()
    if not parts:
        return None
    command = parts[0].split("@", 1)[0].lower()
    if not command:
        return None
    return command, parts[1:]


class CommandDispatcher:
    """Routes /commands to their handlers, bypassing the model."""

    def __init__(
        self,
        sessions: SessionRegistry,
        tools: ToolRegistry,
        scheduler: HeartbeatScheduler,
    ) -> None:
        self._sessions = sessions
        self._tools = tools
        self._scheduler = scheduler

    async def dispatch(self, message: InboundMessage) -> str | None:
        """Dispatch a message to a command handler.

        Returns:
            A reply string for recognised commands, or None for anything else.
        """
        parsed = parse_command(message.text)
        if parsed is None:
            return None
        command, args = parsed
        LOGGER.info("Command dispatch: command=%r args=%r", command, args)
        if command in ("start", "help"):
            return _HELP
        if command == "reset":
            self._sessions.get_or_create(message.sender_id).reset()
            return "🔄 Conversation cleared."
        if command == "status":
            return self._handle_status(message.sender_id)
        if command == "tasks":
            return self._scheduler.list_tasks()
        if command == "tools":
            return self._handle_tools()
        return None

    def _handle_status(self, sender_id: str) -> str:
        session = self._sessions.get_or_create(sender_id)
        return (
            f"History: {session.history_len()} msgs | Model: {session.model_id} | "
            f"Tools: {len(self._tools.names())} | Tasks: {len(self._scheduler.tasks())}"
        )

    def _handle_tools(self) -> str:
        names = sorted(self._tools.names())
        if not names:
            return "No tools registered."
        return f"🔧 {len(names)} tools:\n\n" + ", ".join(names)
