"""Keyword search over memory records.

OR semantics: a record matches when any query token appears in its
content, category, tags or media file name. Ranking favours records that
match more tokens in more fields, newest first on ties.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from src.memory.models import MemoryRecord

MIN_TOKEN_LENGTH = 3


def tokenize(query: str) -> list[str]:
    """Lowercase whitespace tokens longer than two characters."""
    return [t for t in query.lower().split() if len(t) >= MIN_TOKEN_LENGTH]


def _fields(record: MemoryRecord) -> tuple[str, str, list[str], str]:
    return (
        record.content.lower(),
        record.category.lower(),
        [t.lower() for t in record.tags],
        (record.media_name or "").lower(),
    )


def _matches_whole_query(record: MemoryRecord, needle: str) -> bool:
    content, category, tags, _ = _fields(record)
    return needle in content or needle in category or any(needle in t for t in tags)


def score(record: MemoryRecord, tokens: list[str]) -> int:
    """Count token hits across content, category and tags (one per field)."""
    content, category, tags, _ = _fields(record)
    hits = 0
    for token in tokens:
        if token in content:
            hits += 1
        if token in category:
            hits += 1
        if any(token in t for t in tags):
            hits += 1
    return hits


def _matches_any_token(record: MemoryRecord, tokens: list[str]) -> bool:
    content, category, tags, media_name = _fields(record)
    return any(
        t in content or t in category or t in media_name or any(t in tag for tag in tags)
        for t in tokens
    )


def keyword_search(query: str, corpus: Iterable[MemoryRecord]) -> list[MemoryRecord]:
    """Rank *corpus* against *query*; records with no hit are dropped."""
    needle = query.strip().lower()
    if not needle:
        return []

    records = list(corpus)
    tokens = tokenize(needle)

    if not tokens:
        matched = [r for r in records if _matches_whole_query(r, needle)]
        return sorted(matched, key=lambda r: r.timestamp, reverse=True)

    scored = [(r, score(r, tokens)) for r in records if _matches_any_token(r, tokens)]
    scored.sort(key=lambda pair: (pair[1], pair[0].timestamp), reverse=True)
    return [record for record, _ in scored]
