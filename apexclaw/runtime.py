"""Composition root wiring the core components together."""

from __future__ import annotations

import logging

from apexclaw.agent_session import AgentSession
from apexclaw.commands import CommandDispatcher
from apexclaw.config import Settings, allowed_users
from apexclaw.context_store import ContextStore
from apexclaw.dispatcher import Dispatcher
from apexclaw.heartbeat import HeartbeatScheduler
from apexclaw.llm.base import LLMClient
from apexclaw.messaging import MessagingOps
from apexclaw.progress import ProgressSink
from apexclaw.session_registry import WEB_PREFIX, SessionRegistry
from apexclaw.tools.registry import ToolRegistry
from apexclaw.tools.schedule_tool import CancelTaskTool, ListTasksTool, ScheduleTaskTool
from apexclaw.tools.time_tool import DatetimeTool
from apexclaw.tools.web_fetch_tool import WebFetchTool
from apexclaw.tools.web_search_tool import WebSearchTool
from apexclaw.tools.workflow_tool import DeepWorkTool, ProgressTool

LOGGER = logging.getLogger(__name__)


class Runtime:
    """Owns every shared registry for the lifetime of the process."""

    def __init__(self, settings: Settings, llm: LLMClient, messaging: MessagingOps | None) -> None:
        self.settings = settings
        self.llm = llm
        self.messaging = messaging
        self.tools = ToolRegistry()
        self.contexts = ContextStore()
        self.sessions = SessionRegistry(self._interactive_session)
        self.progress = ProgressSink(messaging, self.contexts, self.sessions)
        self.scheduler = HeartbeatScheduler(
            settings.heartbeat_path,
            self._heartbeat_session,
            messaging,
            settings.owner_id,
            tick_seconds=settings.heartbeat_tick_seconds,
            fire_timeout_seconds=settings.heartbeat_timeout_seconds,
        )
        self.commands = CommandDispatcher(self.sessions, self.tools, self.scheduler)
        self._register_tools()

    def dispatcher(self) -> Dispatcher:
        if self.messaging is None:
            raise RuntimeError("a dispatcher needs a messaging transport")
        return Dispatcher(
            self.messaging,
            self.sessions,
            self.contexts,
            self.progress,
            self.commands,
            allowed_users(self.settings),
            timeout_seconds=self.settings.agent_timeout_seconds,
        )

    def _register_tools(self) -> None:
        for tool in (
            DatetimeTool(),
            WebSearchTool(),
            WebFetchTool(self.settings.jina_api_key),
            ScheduleTaskTool(self.scheduler, self.contexts),
            CancelTaskTool(self.scheduler),
            ListTasksTool(self.scheduler),
            DeepWorkTool(),
            ProgressTool(),
        ):
            self.tools.register(tool)
        LOGGER.info("Registered %d tools", len(self.tools.names()))

    def _interactive_session(self, key: str) -> AgentSession:
        return self._new_session(is_web=key.startswith(WEB_PREFIX), progress=self.progress)

    def _heartbeat_session(self) -> AgentSession:
        return self._new_session(is_web=False, progress=None)

    def _new_session(self, *, is_web: bool, progress: ProgressSink | None) -> AgentSession:
        return AgentSession(
            self.llm,
            self.tools,
            self.settings.model_id,
            self.settings.owner_id,
            max_iterations=self.settings.max_iterations,
            max_history=self.settings.history_ceiling,
            is_web=is_web,
            progress=progress,
            blocks_context_grace_seconds=self.settings.blocks_context_grace_seconds,
        )
