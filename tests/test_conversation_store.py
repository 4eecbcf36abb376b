"""Tests for saved conversations."""

import pytest

from src.conversations.store import (
    DEFAULT_TITLE,
    ConversationStore,
    derive_title,
    new_conversation_id,
)
from src.errors import AuthenticationRequired
from src.memory.models import ConversationRecord, Message


def _conversation(conversation_id: str = "c1", *texts: str) -> ConversationRecord:
    messages = [
        Message(id=str(i), role="user" if i % 2 == 0 else "assistant", text=t)
        for i, t in enumerate(texts)
    ]
    return ConversationRecord(id=conversation_id, title="", messages=messages)


def test_derive_title_uses_first_user_message() -> None:
    messages = [
        Message(role="assistant", text="Hello!"),
        Message(role="user", text="  " + "x" * 80),
    ]
    assert derive_title(messages) == "x" * 50


def test_derive_title_default() -> None:
    assert derive_title([]) == DEFAULT_TITLE


def test_new_conversation_id_is_unique() -> None:
    assert new_conversation_id() != new_conversation_id()


async def test_upsert_and_get(conversation_store: ConversationStore) -> None:
    await conversation_store.upsert("u1", _conversation("c1", "Plan my trip", "Sure."))

    saved = await conversation_store.get_by_id("u1", "c1")
    assert saved is not None
    assert saved.title == "Plan my trip"
    assert [m.text for m in saved.messages] == ["Plan my trip", "Sure."]


async def test_upsert_overwrites_messages(conversation_store: ConversationStore) -> None:
    await conversation_store.upsert("u1", _conversation("c1", "first"))
    await conversation_store.upsert("u1", _conversation("c1", "first", "reply", "second"))

    saved = await conversation_store.get_by_id("u1", "c1")
    assert len(saved.messages) == 3


async def test_list_has_no_messages(conversation_store: ConversationStore) -> None:
    await conversation_store.upsert("u1", _conversation("c1", "one"))
    await conversation_store.upsert("u1", _conversation("c2", "two"))

    listed = await conversation_store.list("u1")
    assert {c.id for c in listed} == {"c1", "c2"}
    assert all(c.messages == [] for c in listed)


async def test_conversations_are_scoped_to_user(conversation_store: ConversationStore) -> None:
    await conversation_store.upsert("u1", _conversation("c1", "mine"))
    assert await conversation_store.get_by_id("u2", "c1") is None
    assert await conversation_store.list("u2") == []


async def test_cannot_overwrite_another_users_conversation(
    conversation_store: ConversationStore,
) -> None:
    await conversation_store.upsert("u1", _conversation("c1", "mine"))
    with pytest.raises(AuthenticationRequired):
        await conversation_store.upsert("u2", _conversation("c1", "theirs"))


async def test_delete(conversation_store: ConversationStore) -> None:
    await conversation_store.upsert("u1", _conversation("c1", "bye"))
    assert await conversation_store.delete("u1", "c1") is True
    assert await conversation_store.get_by_id("u1", "c1") is None
    assert await conversation_store.delete("u1", "c1") is False


async def test_requires_user(conversation_store: ConversationStore) -> None:
    with pytest.raises(AuthenticationRequired):
        await conversation_store.list(None)


# -- writes racing a read ----------------------------------------------------


class _WriteOnClose:
    """Connection that runs *write* right after the read's rows are fetched."""

    def __init__(self, db, write) -> None:
        self._db = db
        self._write = write

    async def execute(self, sql: str, params: tuple = ()):
        return await self._db.execute(sql, params)

    async def close(self) -> None:
        await self._db.close()
        await self._write()


def _write_during_next_read(store: ConversationStore, monkeypatch, write) -> None:
    real_connect = store._connect

    async def connect():
        monkeypatch.setattr(store, "_connect", real_connect)
        return _WriteOnClose(await real_connect(), write)

    monkeypatch.setattr(store, "_connect", connect)


async def test_list_not_cached_over_concurrent_upsert(
    conversation_store: ConversationStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    await conversation_store.upsert("u1", _conversation("c1", "one"))
    _write_during_next_read(
        conversation_store,
        monkeypatch,
        lambda: conversation_store.upsert("u1", _conversation("c2", "two")),
    )

    assert [c.id for c in await conversation_store.list("u1")] == ["c1"]
    assert {c.id for c in await conversation_store.list("u1")} == {"c1", "c2"}


async def test_get_not_cached_over_concurrent_upsert(
    conversation_store: ConversationStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    await conversation_store.upsert("u1", _conversation("c1", "first"))
    _write_during_next_read(
        conversation_store,
        monkeypatch,
        lambda: conversation_store.upsert("u1", _conversation("c1", "first", "reply")),
    )

    stale = await conversation_store.get_by_id("u1", "c1")
    assert len(stale.messages) == 1
    fresh = await conversation_store.get_by_id("u1", "c1")
    assert len(fresh.messages) == 2
