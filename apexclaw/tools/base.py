"""Tool contracts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from apexclaw.agent_session import AgentSession


@dataclass(frozen=True, slots=True)
class ToolArg:
    """One named string argument a tool accepts."""

    name: str
    description: str
    required: bool = False


class Tool(ABC):
    """Base class for all assistant tools.

    A plain tool only sees its arguments. Tools that need to know who is
    calling derive from ContextualTool instead.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    args: ClassVar[tuple[ToolArg, ...]] = ()
    # Restricted to the configured owner.
    secure: ClassVar[bool] = False
    # May outlive the caller's deadline; the agent grants a grace period afterwards.
    blocks_context: ClassVar[bool] = False

    @abstractmethod
    async def run(self, args: dict[str, str]) -> str:
        """Execute tool with parsed arguments."""


class ContextualTool(Tool):
    """A tool that runs on behalf of a specific sender."""

    async def run(self, args: dict[str, str]) -> str:
        return f"Error: {self.name} requires context"

    @abstractmethod
    async def run_with_context(self, args: dict[str, str], sender_id: str) -> str:
        """Execute tool for ``sender_id``."""


class SessionTool(ContextualTool):
    """A tool that acts on the agent session that called it."""

    async def run_with_context(self, args: dict[str, str], sender_id: str) -> str:
        return f"Error: {self.name} requires a session"

    @abstractmethod
    async def run_in_session(self, args: dict[str, str], sender_id: str, session: AgentSession) -> str:
        """Execute tool on behalf of ``session``."""
