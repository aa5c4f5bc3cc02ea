"""
Conversation memory: session ids, turn history and context injection.

Memory is best-effort. Every storage failure is logged and turned into an
empty result or a no-op so that a broken store never blocks a chat reply.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal

from chatstudio.core.errors import MemoryDegradedError
from chatstudio.core.session_store import SessionStore
from chatstudio.models.session import Role, Turn, new_session_id

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "[Previous Conversation Context]"
CONTEXT_FOOTER = "[End of Context]"

HistoryPolicy = Literal["oldest", "latest"]


class MemoryManager:
    """
    Sole writer of session history.

    Args:
        store: Where turns are persisted
        history_policy: "oldest" keeps the first N turns as context once
            history outgrows the window; "latest" keeps the last N
    """

    def __init__(self, store: SessionStore, history_policy: HistoryPolicy = "oldest"):
        self.store = store
        self.history_policy = history_policy

    def open(self, session_id: str | None = None) -> str:
        """Return the given session id unchanged, or mint a fresh one when it is blank."""
        if session_id and session_id.strip():
            return session_id
        return new_session_id()

    def append(self, session_id: str, role: Role, content: str) -> None:
        try:
            self.store.append(session_id, role, content)
        except MemoryDegradedError as e:
            logger.warning("Memory degraded, %s turn not saved for %s: %s", role, session_id, e)

    def recent(self, session_id: str, limit: int) -> list[Turn]:
        """Up to ``limit`` turns, oldest first, selected by the history policy."""
        if limit <= 0:
            return []
        try:
            return self.store.query(session_id, limit=limit, newest=self.history_policy == "latest")
        except MemoryDegradedError as e:
            logger.warning("Memory degraded, no context for %s: %s", session_id, e)
            return []

    def all(self, session_id: str) -> list[Turn]:
        try:
            return self.store.query(session_id)
        except MemoryDegradedError as e:
            logger.warning("Memory degraded, history unavailable for %s: %s", session_id, e)
            return []

    def clear(self, session_id: str) -> None:
        try:
            removed = self.store.delete(session_id)
            logger.debug("Cleared %d turns from %s", removed, session_id)
        except MemoryDegradedError as e:
            logger.warning("Memory degraded, could not clear %s: %s", session_id, e)

    @staticmethod
    def format_for_injection(turns: Sequence[Turn]) -> str:
        """
        Render turns as a labeled context block.

        Returns an empty string when there is nothing to inject.
        """
        if not turns:
            return ""
        body = "\n".join(f"{turn.role.upper()}: {turn.content}" for turn in turns)
        return f"{CONTEXT_HEADER}\n{body}\n{CONTEXT_FOOTER}\n\n"
