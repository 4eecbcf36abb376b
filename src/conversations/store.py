"""ConversationStore — saved chat transcripts via libsql."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from src.cache import TTLCache, conversation_key, conversations_key
from src.config import settings
from src.db import ensure_schema, get_connection
from src.errors import AuthenticationRequired
from src.memory.models import ConversationRecord, Message

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50
DEFAULT_TITLE = "New Conversation"


def new_conversation_id() -> str:
    """Random id for a conversation created on the client."""
    return uuid.uuid4().hex


def derive_title(messages: Sequence[Message]) -> str:
    """First user message, truncated."""
    for message in messages:
        if message.role == "user" and message.text.strip():
            return message.text.strip()[:TITLE_MAX_CHARS]
    return DEFAULT_TITLE


class ConversationStore:
    """Persists conversations in SQLite / Turso.

    Saves overwrite the whole message list. Singleton accessed via
    ``ConversationStore.get()``; pass *db_path* for test isolation.
    """

    _instance: ConversationStore | None = None

    def __init__(self, db_path: Path | None = None, cache: TTLCache | None = None) -> None:
        self._db_path = db_path
        self._initialised = False
        self._cache = cache or TTLCache(default_ttl=settings.list_cache_ttl_seconds)

    @classmethod
    def get(cls) -> ConversationStore:
        """Return the shared ConversationStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    async def _connect(self):  # noqa: ANN202
        db = await get_connection(local_path_override=self._db_path)
        if not self._initialised:
            await ensure_schema(db)
            self._initialised = True
        return db

    @staticmethod
    def _require_user(user_id: str | None) -> str:
        if not user_id:
            msg = "User not authenticated"
            raise AuthenticationRequired(msg)
        return user_id

    def _invalidate(self, user_id: str, conversation_id: str) -> None:
        self._cache.invalidate(conversations_key(user_id))
        self._cache.invalidate(conversation_key(user_id, conversation_id))

    # -- CRUD ------------------------------------------------------------------

    async def upsert(self, user_id: str | None, conversation: ConversationRecord) -> None:
        """Insert or replace a conversation, keeping its original created_at."""
        user_id = self._require_user(user_id)
        now = datetime.now(UTC).isoformat()
        messages_json = json.dumps(
            [m.model_dump(mode="json", by_alias=True) for m in conversation.messages]
        )
        title = conversation.title or derive_title(conversation.messages)

        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT created_at, user_id FROM conversations WHERE id = ?",
                (conversation.id,),
            )
            existing = await cursor.fetchone()
            if existing and existing[1] != user_id:
                msg = f"Conversation {conversation.id} belongs to another user"
                raise AuthenticationRequired(msg)
            created_at = existing[0] if existing else conversation.timestamp.isoformat()

            await db.execute(
                """
                INSERT OR REPLACE INTO conversations
                    (id, user_id, title, messages, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (conversation.id, user_id, title, messages_json, created_at, now),
            )
            await db.commit()
        finally:
            await db.close()

        self._invalidate(user_id, conversation.id)

    async def list(self, user_id: str | None, *, use_cache: bool = True) -> list[ConversationRecord]:
        """Conversation metadata (no messages), most recently updated first."""
        user_id = self._require_user(user_id)
        key = conversations_key(user_id)
        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        generation = self._cache.generation
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, title, created_at FROM conversations "
                "WHERE user_id = ? ORDER BY updated_at DESC",
                (user_id,),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()

        conversations = [
            ConversationRecord(id=row[0], title=row[1], messages=[], timestamp=row[2])
            for row in rows
        ]
        self._cache.set(
            key, conversations, settings.list_cache_ttl_seconds, generation=generation
        )
        return conversations

    async def get_by_id(
        self, user_id: str | None, conversation_id: str, *, use_cache: bool = True
    ) -> ConversationRecord | None:
        """Full conversation, or None if absent."""
        user_id = self._require_user(user_id)
        key = conversation_key(user_id, conversation_id)
        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        generation = self._cache.generation
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, title, messages, created_at FROM conversations "
                "WHERE id = ? AND user_id = ?",
                (conversation_id, user_id),
            )
            row = await cursor.fetchone()
        finally:
            await db.close()

        if not row:
            return None
        conversation = ConversationRecord(
            id=row[0],
            title=row[1],
            messages=[Message.model_validate(m) for m in json.loads(row[2] or "[]")],
            timestamp=row[3],
        )
        self._cache.set(
            key, conversation, settings.item_cache_ttl_seconds, generation=generation
        )
        return conversation

    async def delete(self, user_id: str | None, conversation_id: str) -> bool:
        """Delete a conversation. Returns True if a row was removed."""
        user_id = self._require_user(user_id)
        db = await self._connect()
        try:
            cursor = await db.execute(
                "DELETE FROM conversations WHERE id = ? AND user_id = ?",
                (conversation_id, user_id),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()

        self._invalidate(user_id, conversation_id)
        return deleted
