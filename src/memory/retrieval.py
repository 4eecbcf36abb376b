"""Merging, truncation and sanitization of search results.

Vector hits take priority over keyword hits for the same record. Anything
headed for the model goes through ``sanitize()`` first: base64 media and
embedding vectors inflate prompts and add seconds of latency.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.memory.models import SanitizedMemory

if TYPE_CHECKING:
    from collections.abc import Iterable

    from src.memory.embeddings import EmbeddingClient
    from src.memory.models import MemoryRecord
    from src.memory.store import MemoryStore

logger = logging.getLogger(__name__)

MAX_LLM_CONTEXT = 8
MAX_UI_SEARCH = 10
MAX_RAW_SEARCH = 50


def merge(
    vector_results: Iterable[MemoryRecord],
    keyword_results: Iterable[MemoryRecord],
    max_results: int | None = MAX_LLM_CONTEXT,
) -> list[MemoryRecord]:
    """Vector results first, then unseen keyword results, truncated.

    Pass ``max_results=None`` to get the full deduplicated list.
    """
    combined: list[MemoryRecord] = []
    seen: set[int] = set()
    for record in (*vector_results, *keyword_results):
        if record.id in seen:
            continue
        seen.add(record.id)
        combined.append(record)
    if max_results is None:
        return combined
    return combined[:max_results]


def sanitize_one(record: MemoryRecord) -> SanitizedMemory:
    return SanitizedMemory(
        id=record.id,
        content=record.content,
        category=record.category,
        tags=list(record.tags),
        timestamp=record.timestamp,
        type=record.type,
        media_name=record.media_name,
    )


def sanitize(records: Iterable[MemoryRecord]) -> list[SanitizedMemory]:
    """Drop ``media_data`` and ``embedding`` from every record."""
    return [sanitize_one(r) for r in records]


async def hybrid_search(
    store: MemoryStore,
    embeddings: EmbeddingClient,
    user_id: str | None,
    query: str,
) -> list[MemoryRecord]:
    """Vector + keyword search, merged and deduplicated but not truncated.

    An unavailable embedding degrades to keyword-only results.
    """
    vector = await embeddings.try_embed(query)
    vector_results = await store.search_by_vector(user_id, vector) if vector else []
    keyword_results = await store.search_by_keyword(user_id, query)
    combined = merge(vector_results, keyword_results, max_results=None)
    logger.info(
        "Hybrid search %r: %d vector, %d keyword, %d combined",
        query[:80],
        len(vector_results),
        len(keyword_results),
        len(combined),
    )
    return combined
