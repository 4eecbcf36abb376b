"""Cosine-similarity ranking of embedded memories."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from src.memory.models import MemoryRecord

LOCAL_TOP_K = 5
SERVER_TOP_K = 15
SERVER_MIN_SCORE = 0.5


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero magnitude."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        msg = f"Vector length mismatch: {va.shape[0]} != {vb.shape[0]}"
        raise ValueError(msg)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def score_records(
    query_vector: Sequence[float],
    corpus: Iterable[MemoryRecord],
) -> list[tuple[MemoryRecord, float]]:
    """Score every embedded record against the query, best first.

    Records without an embedding, or whose embedding dimension differs
    from the query's (written by a different model), are skipped. The sort
    is stable, so equal scores keep corpus order.
    """
    scored: list[tuple[MemoryRecord, float]] = []
    for record in corpus:
        if not record.embedding or len(record.embedding) != len(query_vector):
            continue
        scored.append((record, cosine_similarity(query_vector, record.embedding)))
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


def vector_search(
    query_vector: Sequence[float],
    corpus: Iterable[MemoryRecord],
    k: int = LOCAL_TOP_K,
    min_score: float | None = None,
) -> list[MemoryRecord]:
    """Return the top-*k* records by cosine similarity.

    With *min_score* set, records scoring below it are discarded first.
    An empty query vector matches nothing.
    """
    if not query_vector or k <= 0:
        return []
    scored = score_records(query_vector, corpus)
    if min_score is not None:
        scored = [(r, s) for r, s in scored if s >= min_score]
    return [record for record, _ in scored[:k]]
