"""Tests for the TTL cache in front of the stores."""

from src.cache import TTLCache, conversation_key, conversations_key, memories_key


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_stored_value() -> None:
    cache = TTLCache()
    cache.set("k", [1, 2])
    assert cache.get("k") == [1, 2]


def test_missing_key_is_none() -> None:
    assert TTLCache().get("nope") is None


def test_entry_expires_after_ttl() -> None:
    clock = _Clock()
    cache = TTLCache(default_ttl=10, clock=clock)
    cache.set("k", "v")

    clock.now = 10
    assert cache.get("k") == "v"
    clock.now = 10.5
    assert cache.get("k") is None
    assert len(cache) == 0


def test_per_key_ttl_overrides_default() -> None:
    clock = _Clock()
    cache = TTLCache(default_ttl=10, clock=clock)
    cache.set("short", "v", ttl=1)
    cache.set("long", "v")

    clock.now = 5
    assert cache.get("short") is None
    assert cache.get("long") == "v"


def test_invalidate_exact_key() -> None:
    cache = TTLCache()
    cache.set(memories_key("u1"), "a")
    cache.set(memories_key("u2"), "b")

    assert cache.invalidate(memories_key("u1")) == 1
    assert cache.get(memories_key("u1")) is None
    assert cache.get(memories_key("u2")) == "b"


def test_invalidate_wildcard() -> None:
    cache = TTLCache()
    cache.set(conversation_key("u1", "c1"), "a")
    cache.set(conversation_key("u1", "c2"), "b")
    cache.set(conversations_key("u1"), "list")

    assert cache.invalidate("conversation:u1:*") == 2
    assert cache.get(conversations_key("u1")) == "list"


def test_invalidate_all() -> None:
    cache = TTLCache()
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.invalidate() == 2
    assert len(cache) == 0


def test_invalidate_unknown_key_is_noop() -> None:
    assert TTLCache().invalidate("missing") == 0


def test_set_skipped_after_invalidation_since_read() -> None:
    cache = TTLCache()
    seen = cache.generation
    cache.invalidate(memories_key("u1"))

    assert cache.set(memories_key("u1"), ["stale"], generation=seen) is False
    assert cache.get(memories_key("u1")) is None


def test_set_with_current_generation_is_stored() -> None:
    cache = TTLCache()
    assert cache.set("k", "v", generation=cache.generation) is True
    assert cache.get("k") == "v"
