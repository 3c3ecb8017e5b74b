"""Thread-safe registry of the tools the model may call."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from apexclaw.rwlock import ReadWriteLock
from apexclaw.tools.base import ContextualTool, SessionTool, Tool

if TYPE_CHECKING:
    from apexclaw.agent_session import AgentSession


class ToolRegistry:
    """Name -> tool map. Reads run concurrently, registration is exclusive."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        with self._lock.write():
            self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        with self._lock.read():
            return self._tools.get(name)

    def list(self) -> list[Tool]:
        with self._lock.read():
            return list(self._tools.values())

    def names(self) -> list[str]:
        with self._lock.read():
            return list(self._tools)

    async def execute(
        self,
        tool_name: str,
        arguments: dict[str, str],
        sender_id: str,
        session: AgentSession | None = None,
    ) -> str:
        tool = self.get(tool_name)
        if tool is None:
            raise KeyError(f"Unknown tool: {tool_name}")

        if isinstance(tool, SessionTool) and session is not None:
            result = await tool.run_in_session(arguments, sender_id, session)
        elif isinstance(tool, ContextualTool):
            result = await tool.run_with_context(arguments, sender_id)
        else:
            result = await tool.run(arguments)
        return _render_result(result)


def _render_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    return json.dumps(result)
