"""Async database connection abstraction over libsql.

Provides a thin async wrapper around the synchronous ``libsql`` driver using
``asyncio.to_thread()``.  Connection target is determined by settings:

- **Server-backed**: ``TURSO_DATABASE_URL`` + ``TURSO_AUTH_TOKEN`` → remote Turso
- **Local fallback**: no Turso env vars → local SQLite file via ``database_path``

The schema for memories and conversations is created lazily by
``ensure_schema()`` the first time each store connects.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import libsql

if TYPE_CHECKING:
    from pathlib import Path

from src.config import settings

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS memories (
        id               INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id          TEXT NOT NULL,
        content          TEXT NOT NULL,
        category         TEXT NOT NULL DEFAULT 'general',
        tags             TEXT NOT NULL DEFAULT '[]',
        type             TEXT NOT NULL DEFAULT 'text',
        media_data       TEXT,
        media_mime_type  TEXT,
        media_name       TEXT,
        embedding        TEXT,
        created_at       TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_memories_user ON memories (user_id, created_at)",
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id          TEXT PRIMARY KEY,
        user_id     TEXT NOT NULL,
        title       TEXT NOT NULL,
        messages    TEXT NOT NULL DEFAULT '[]',
        created_at  TEXT NOT NULL,
        updated_at  TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations (user_id, updated_at)",
)


class _AsyncCursor:
    """Async view over a synchronous libsql cursor."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def lastrowid(self) -> int | None:
        return self._cursor.lastrowid

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class AsyncConnection:
    """Async view over a synchronous libsql connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await asyncio.to_thread(self._conn.execute, sql, params)
        return _AsyncCursor(cursor)

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _connect_file(path: Path) -> Any:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = libsql.connect(str(path))
    for pragma in ("journal_mode=WAL", "busy_timeout=5000"):
        conn.execute(f"PRAGMA {pragma}")
    return conn


def _connect_remote() -> Any:
    return libsql.connect(
        database=settings.turso_database_url,
        auth_token=settings.turso_auth_token,
    )


async def get_connection(local_path_override: Path | None = None) -> AsyncConnection:
    """Open a connection to the configured database.

    An explicit *local_path_override* always wins (tests and one-off tools);
    then Turso when ``TURSO_DATABASE_URL`` is set; else ``database_path``.
    """
    if local_path_override is None and settings.is_remote_database():
        conn = await asyncio.to_thread(_connect_remote)
    else:
        conn = await asyncio.to_thread(
            _connect_file, local_path_override or settings.database_path
        )
    return AsyncConnection(conn)


async def ensure_schema(db: AsyncConnection) -> None:
    """Create the memories and conversations tables if they are missing."""
    for statement in SCHEMA:
        await db.execute(statement)
    await db.commit()
