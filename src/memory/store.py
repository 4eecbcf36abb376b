"""MemoryStore — per-user CRUD and search over memories via libsql.

Two modes, chosen by settings:
- Server-backed: ``TURSO_DATABASE_URL`` set. Vector search returns up to 15
  hits and discards scores below 0.5.
- Local fallback: a SQLite file. Vector search returns the top 5.

Every call is scoped to a user id; calls without one raise
``AuthenticationRequired``.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from src.cache import TTLCache, memories_key
from src.config import settings
from src.db import ensure_schema, get_connection
from src.errors import AuthenticationRequired
from src.memory.keyword import keyword_search
from src.memory.models import MemoryRecord, MemoryType
from src.memory.retrieval import MAX_RAW_SEARCH
from src.memory.similarity import (
    LOCAL_TOP_K,
    SERVER_MIN_SCORE,
    SERVER_TOP_K,
    vector_search,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

_LIGHT_COLUMNS = "id, content, category, tags, type, NULL, media_mime_type, media_name, NULL, created_at"
_ALL_COLUMNS = (
    "id, content, category, tags, type, media_data, media_mime_type, media_name, "
    "embedding, created_at"
)


def _row_to_record(row: tuple) -> MemoryRecord:
    return MemoryRecord(
        id=row[0],
        content=row[1],
        category=row[2],
        tags=json.loads(row[3] or "[]"),
        type=MemoryType(row[4]),
        media_data=row[5],
        media_mime_type=row[6],
        media_name=row[7],
        embedding=json.loads(row[8]) if row[8] else None,
        timestamp=datetime.fromisoformat(row[9]),
    )


class MemoryStore:
    """Persists memories in SQLite / Turso.

    Singleton accessed via ``MemoryStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: MemoryStore | None = None

    def __init__(
        self,
        db_path: Path | None = None,
        cache: TTLCache | None = None,
        server_mode: bool | None = None,
    ) -> None:
        self._db_path = db_path
        self._initialised = False
        self._cache = cache or TTLCache(default_ttl=settings.list_cache_ttl_seconds)
        self._server_mode = server_mode

    @classmethod
    def get(cls) -> MemoryStore:
        """Return the shared MemoryStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def server_mode(self) -> bool:
        if self._server_mode is not None:
            return self._server_mode
        return settings.is_remote_database()

    # -- Internal helpers ------------------------------------------------------

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

    async def _fetch(self, sql: str, params: tuple) -> list[MemoryRecord]:
        db = await self._connect()
        try:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [_row_to_record(row) for row in rows]

    # -- Write -----------------------------------------------------------------

    async def create(
        self,
        user_id: str | None,
        content: str,
        category: str = "general",
        tags: Sequence[str] | None = None,
        type: MemoryType = MemoryType.TEXT,  # noqa: A002
        media_data: str | None = None,
        media_mime_type: str | None = None,
        media_name: str | None = None,
        embedding: Sequence[float] | None = None,
    ) -> int:
        """Insert a memory and return its id."""
        user_id = self._require_user(user_id)
        now = datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                INSERT INTO memories
                    (user_id, content, category, tags, type, media_data,
                     media_mime_type, media_name, embedding, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    content,
                    category or "general",
                    json.dumps(list(tags or [])),
                    MemoryType(type).value,
                    media_data,
                    media_mime_type,
                    media_name,
                    json.dumps(list(embedding)) if embedding else None,
                    now,
                ),
            )
            await db.commit()
            memory_id = cursor.lastrowid
        finally:
            await db.close()

        self._cache.invalidate(memories_key(user_id))
        logger.debug("Stored memory %s [%s]: %s", memory_id, category, content[:80])
        return int(memory_id)

    async def delete(self, user_id: str | None, memory_id: int) -> bool:
        """Delete a memory. Returns True if a row was removed."""
        user_id = self._require_user(user_id)
        db = await self._connect()
        try:
            cursor = await db.execute(
                "DELETE FROM memories WHERE id = ? AND user_id = ?",
                (memory_id, user_id),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        finally:
            await db.close()

        self._cache.invalidate(memories_key(user_id))
        if deleted:
            logger.info("Deleted memory %s", memory_id)
        return deleted

    # -- Read ------------------------------------------------------------------

    async def list(
        self,
        user_id: str | None,
        *,
        category: str | None = None,
        type: MemoryType | None = None,  # noqa: A002
        include_heavy: bool = False,
        use_cache: bool = True,
    ) -> list[MemoryRecord]:
        """All of a user's memories, newest first.

        Heavy fields (media data, embeddings) are omitted unless
        *include_heavy* is set. The light listing is cached.
        """
        user_id = self._require_user(user_id)
        cacheable = not include_heavy

        records: list[MemoryRecord] | None = None
        if cacheable and use_cache:
            records = self._cache.get(memories_key(user_id))

        if records is None:
            generation = self._cache.generation
            columns = _ALL_COLUMNS if include_heavy else _LIGHT_COLUMNS
            records = await self._fetch(
                f"SELECT {columns} FROM memories WHERE user_id = ? "  # noqa: S608
                "ORDER BY created_at DESC, id DESC",
                (user_id,),
            )
            if cacheable:
                self._cache.set(
                    memories_key(user_id),
                    records,
                    settings.list_cache_ttl_seconds,
                    generation=generation,
                )

        if category is not None:
            records = [r for r in records if r.category.lower() == category.lower()]
        if type is not None:
            records = [r for r in records if r.type == MemoryType(type)]
        return records

    async def list_by_category(self, user_id: str | None, category: str) -> list[MemoryRecord]:
        return await self.list(user_id, category=category)

    async def list_by_type(self, user_id: str | None, type: MemoryType) -> list[MemoryRecord]:  # noqa: A002
        return await self.list(user_id, type=type)

    async def get_by_id(self, user_id: str | None, memory_id: int) -> MemoryRecord | None:
        """Fetch one memory with all fields, or None if not found."""
        user_id = self._require_user(user_id)
        rows = await self._fetch(
            f"SELECT {_ALL_COLUMNS} FROM memories WHERE id = ? AND user_id = ?",  # noqa: S608
            (memory_id, user_id),
        )
        return rows[0] if rows else None

    async def search_by_keyword(
        self,
        user_id: str | None,
        query: str,
        limit: int = MAX_RAW_SEARCH,
    ) -> list[MemoryRecord]:
        """Keyword search over the user's memories (full records)."""
        corpus = await self.list(user_id, include_heavy=True)
        return keyword_search(query, corpus)[:limit]

    async def search_by_vector(
        self,
        user_id: str | None,
        query_vector: Sequence[float],
    ) -> list[MemoryRecord]:
        """Cosine-similarity search over the user's embedded memories."""
        user_id = self._require_user(user_id)
        if not query_vector:
            logger.warning("search_by_vector: empty embedding provided")
            return []

        corpus = await self._fetch(
            f"SELECT {_ALL_COLUMNS} FROM memories "  # noqa: S608
            "WHERE user_id = ? AND embedding IS NOT NULL ORDER BY created_at DESC",
            (user_id,),
        )
        if self.server_mode:
            return vector_search(
                query_vector, corpus, k=SERVER_TOP_K, min_score=SERVER_MIN_SCORE
            )
        return vector_search(query_vector, corpus, k=LOCAL_TOP_K)

    async def stats(self, user_id: str | None) -> dict[str, Any]:
        """Counts per category and type, for the memories view."""
        records = await self.list(user_id)
        by_category: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for r in records:
            by_category[r.category] = by_category.get(r.category, 0) + 1
            by_type[r.type.value] = by_type.get(r.type.value, 0) + 1
        return {"total": len(records), "byCategory": by_category, "byType": by_type}
