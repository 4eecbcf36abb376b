"""Small in-process TTL cache in front of the memory and conversation stores.

Entries expire after a per-key TTL. Writers invalidate affected keys
synchronously, either exactly or with a ``*`` wildcard pattern. Readers that
fill the cache after an await pass the ``generation`` they saw before the
fetch, so a result read before a concurrent write is never stored.
"""

from __future__ import annotations

import fnmatch
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

DEFAULT_TTL_SECONDS = 30.0


@dataclass
class _Entry:
    value: Any
    stored_at: float
    ttl: float


class TTLCache:
    """Key/value cache with per-entry expiry.

    Pass *clock* to control time in tests.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, _Entry] = {}
        self._default_ttl = default_ttl
        self._clock = clock
        self._generation = 0

    @property
    def generation(self) -> int:
        """Bumped by every invalidation."""
        return self._generation

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > entry.ttl:
            del self._entries[key]
            return None
        return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        *,
        generation: int | None = None,
    ) -> bool:
        """Store *value*. Skipped (returns False) when *generation* is stale."""
        if generation is not None and generation != self._generation:
            return False
        self._entries[key] = _Entry(
            value=value,
            stored_at=self._clock(),
            ttl=self._default_ttl if ttl is None else ttl,
        )
        return True

    def invalidate(self, pattern: str | None = None) -> int:
        """Drop keys matching *pattern* (``*`` wildcard); all keys when None.

        Returns the number of entries removed.
        """
        self._generation += 1
        if pattern is None or pattern == "*":
            count = len(self._entries)
            self._entries.clear()
            return count

        if "*" in pattern:
            doomed = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
        else:
            doomed = [pattern] if pattern in self._entries else []
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._generation += 1
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# -- Key builders ------------------------------------------------------------


def memories_key(user_id: str) -> str:
    return f"memories:{user_id}"


def conversations_key(user_id: str) -> str:
    return f"conversations:{user_id}"


def conversation_key(user_id: str, conversation_id: str) -> str:
    return f"conversation:{user_id}:{conversation_id}"
