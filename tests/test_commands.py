"""Tests for the /command dispatch system."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from apexclaw.commands import CommandDispatcher, parse_command
from apexclaw.models import InboundMessage
from apexclaw.session_registry import SessionRegistry
from apexclaw.tools.registry import ToolRegistry
from apexclaw.tools.time_tool import DatetimeTool
from apexclaw.tools.web_search_tool import WebSearchTool


def _msg(text: str) -> InboundMessage:
    return InboundMessage(
        chat_id=42,
        sender_id="42",
        text=text,
        timestamp=datetime.now(timezone.utc),
        message_id=3,
    )


def _dispatcher() -> tuple[CommandDispatcher, MagicMock, MagicMock]:
    session = MagicMock()
    session.history_len.return_value = 7
    session.model_id = "z-ai/glm-4.7"
    sessions = SessionRegistry(lambda key: session)
    tools = ToolRegistry()
    tools.register(WebSearchTool())
    tools.register(DatetimeTool())
    scheduler = MagicMock()
    scheduler.tasks.return_value = [object(), object()]
    scheduler.list_tasks.return_value = "No scheduled tasks."
    return CommandDispatcher(sessions, tools, scheduler), session, scheduler


class TestParseCommand:
    def test_regular_text_returns_none(self):
        assert parse_command("hello world") is None

    def test_empty_string_returns_none(self):
        assert parse_command("") is None

    def test_slash_alone_returns_none(self):
        assert parse_command("/") is None
        assert parse_command("/   ") is None

    def test_command_with_no_args(self):
        assert parse_command("/status") == ("status", [])

    def test_command_with_args(self):
        assert parse_command("/tasks all now") == ("tasks", ["all", "now"])

    def test_bot_suffix_and_case_are_normalised(self):
        assert parse_command("  /Reset@ApexClawBot ") == ("reset", [])


@pytest.mark.parametrize("text", ["/start", "/help"])
@pytest.mark.asyncio
async def test_start_and_help(text):
    dispatcher, _, _ = _dispatcher()
    reply = await dispatcher.dispatch(_msg(text))
    assert reply.startswith("👋 Hey, I'm ApexClaw.")
    assert "/reset" in reply


@pytest.mark.asyncio
async def test_reset_clears_session():
    dispatcher, session, _ = _dispatcher()
    assert await dispatcher.dispatch(_msg("/reset")) == "🔄 Conversation cleared."
    session.reset.assert_called_once_with()


@pytest.mark.asyncio
async def test_status():
    dispatcher, _, _ = _dispatcher()
    reply = await dispatcher.dispatch(_msg("/status"))
    assert reply == "History: 7 msgs | Model: z-ai/glm-4.7 | Tools: 2 | Tasks: 2"


@pytest.mark.asyncio
async def test_tasks_lists_scheduler():
    dispatcher, _, scheduler = _dispatcher()
    assert await dispatcher.dispatch(_msg("/tasks")) == "No scheduled tasks."
    scheduler.list_tasks.assert_called_once_with()


@pytest.mark.asyncio
async def test_tools_lists_sorted_names():
    dispatcher, _, _ = _dispatcher()
    assert await dispatcher.dispatch(_msg("/tools")) == "🔧 2 tools:\n\ndatetime, web_search"


@pytest.mark.parametrize("text", ["/unknown", "just chatting"])
@pytest.mark.asyncio
async def test_everything_else_falls_through(text):
    dispatcher, _, _ = _dispatcher()
    assert await dispatcher.dispatch(_msg(text)) is None
