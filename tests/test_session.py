"""Tests for in-memory chat sessions."""

from src.llm.session import ChatSession, SessionStore, session_key


def test_session_key_uses_server_for_anonymous() -> None:
    assert session_key("abc", "u1") == "abc-u1"
    assert session_key("abc", None) == "abc-server"


def test_get_or_create_reuses_session() -> None:
    store = SessionStore()
    first = store.get_or_create("s1", "u1")
    first.messages.append({"role": "user", "content": "hi"})

    assert store.get_or_create("s1", "u1") is first
    assert len(store) == 1


def test_same_session_id_different_users_are_isolated() -> None:
    store = SessionStore()
    a = store.get_or_create("s1", "alice")
    b = store.get_or_create("s1", "bob")
    assert a is not b
    assert len(store) == 2


def test_system_prompt_carries_user_name() -> None:
    session = SessionStore().get_or_create("s1", "u1", user_name="Tony")
    assert "(Tony)" in session.system_prompt


def test_reset() -> None:
    store = SessionStore()
    store.get_or_create("s1", "u1")
    assert store.reset("s1", "u1") is True
    assert store.get("s1", "u1") is None
    assert store.reset("s1", "u1") is False


def test_invalidate_user() -> None:
    store = SessionStore()
    store.get_or_create("s1", "alice")
    store.get_or_create("s2", "alice")
    store.get_or_create("s1", "bob")
    store.get_or_create("s1", None)

    assert store.invalidate_user("alice") == 2
    assert store.get("s1", "bob") is not None
    assert store.invalidate_user(None) == 1
    assert len(store) == 1


def test_invalidate_all() -> None:
    store = SessionStore()
    store.get_or_create("s1", "u1")
    store.get_or_create("s2", "u1")
    assert store.invalidate_all() == 2
    assert len(store) == 0


def test_clear_drops_pending_tool_ids() -> None:
    session = ChatSession(session_id="s1", user_id="u1", system_prompt="p")
    session.messages.append({"role": "user", "content": "hi"})
    session.pending_tool_ids.append("toolu_1")

    assert session.clear() == 1
    assert session.messages == []
    assert session.pending_tool_ids == []
    assert session.key == "s1-u1"
