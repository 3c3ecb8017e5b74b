"""Lookup of interactive agent sessions by session key."""

from __future__ import annotations

import logging
from collections.abc import Callable

from apexclaw.agent_session import AgentSession
from apexclaw.rwlock import ReadWriteLock

LOGGER = logging.getLogger(__name__)

WEB_PREFIX = "web_"


class SessionRegistry:
    """Maps opaque session keys (a user id, or ``web_<owner>``) to sessions.

    Sessions are created on first use by ``factory`` and live until deleted.
    """

    def __init__(self, factory: Callable[[str], AgentSession]) -> None:
        self._factory = factory
        self._lock = ReadWriteLock()
        self._sessions: dict[str, AgentSession] = {}

    def get_or_create(self, key: str) -> AgentSession:
        with self._lock.read():
            session = self._sessions.get(key)
        if session is not None:
            return session
        with self._lock.write():
            session = self._sessions.get(key)
            if session is None:
                session = self._factory(key)
                self._sessions[key] = session
                LOGGER.info("Created agent session %s", key)
            return session

    def get(self, key: str) -> AgentSession | None:
        with self._lock.read():
            return self._sessions.get(key)

    def find(self, sender_id: str) -> AgentSession | None:
        """Session a sender is talking through, over Telegram or the web UI."""

        with self._lock.read():
            return self._sessions.get(sender_id) or self._sessions.get(WEB_PREFIX + sender_id)

    def delete(self, key: str) -> None:
        with self._lock.write():
            self._sessions.pop(key, None)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._sessions)
