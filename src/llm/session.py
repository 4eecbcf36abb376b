"""In-memory chat sessions keyed by (session id, user id)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from src.llm.prompt import build_system_instruction

logger = logging.getLogger(__name__)

SERVER_USER = "server"


def session_key(session_id: str, user_id: str | None) -> str:
    return f"{session_id}-{user_id or SERVER_USER}"


@dataclass
class ChatSession:
    """Provider-side conversation state for one chat.

    ``messages`` is in Anthropic message format. ``pending_tool_ids`` holds
    the tool_use ids of the last assistant turn until their results arrive.
    """

    session_id: str
    user_id: str | None
    system_prompt: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    pending_tool_ids: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return session_key(self.session_id, self.user_id)

    def clear(self) -> int:
        """Clear all messages. Returns the count of cleared messages."""
        count = len(self.messages)
        self.messages.clear()
        self.pending_tool_ids.clear()
        return count


class SessionStore:
    """Get-or-create store for chat sessions.

    The system prompt is fixed when a session is created (it carries the
    date and the user's name), so a reset is the way to refresh it.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, ChatSession] = {}

    def get_or_create(
        self,
        session_id: str,
        user_id: str | None,
        user_name: str | None = None,
    ) -> ChatSession:
        key = session_key(session_id, user_id)
        session = self._sessions.get(key)
        if session is None:
            session = ChatSession(
                session_id=session_id,
                user_id=user_id,
                system_prompt=build_system_instruction(user_name),
            )
            self._sessions[key] = session
        return session

    def get(self, session_id: str, user_id: str | None) -> ChatSession | None:
        return self._sessions.get(session_key(session_id, user_id))

    def reset(self, session_id: str, user_id: str | None) -> bool:
        """Drop one session. Returns True if it existed."""
        return self._sessions.pop(session_key(session_id, user_id), None) is not None

    def invalidate_user(self, user_id: str | None) -> int:
        """Drop every session owned by *user_id* (None means server sessions)."""
        keys = [
            k for k, s in self._sessions.items() if (s.user_id or None) == (user_id or None)
        ]
        for key in keys:
            del self._sessions[key]
        if keys:
            logger.info("Cleared %d chat session(s) for %s", len(keys), user_id or SERVER_USER)
        return len(keys)

    def invalidate_all(self) -> int:
        count = len(self._sessions)
        self._sessions.clear()
        return count

    def __len__(self) -> int:
        return len(self._sessions)
