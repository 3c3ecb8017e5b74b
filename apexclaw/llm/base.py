"""LLM client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from apexclaw.models import Attachment, ChatMessage


class LLMClient(ABC):
    """Abstract chat-completion client used by agent sessions.

    Implementations raise ``TimeoutError`` when the request times out so
    callers can tell a deadline apart from other failures.
    """

    @abstractmethod
    async def send(self, model_id: str, history: Sequence[ChatMessage]) -> str:
        """Return the model's reply to ``history``."""

    @abstractmethod
    async def send_with_files(
        self,
        model_id: str,
        history: Sequence[ChatMessage],
        files: Sequence[Attachment],
    ) -> str:
        """Like send, with ``files`` attached to the latest user message."""
