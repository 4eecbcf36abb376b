"""Tests for cosine-similarity ranking."""

import math

import pytest

from src.memory.models import MemoryRecord
from src.memory.similarity import cosine_similarity, score_records, vector_search


def _record(memory_id: int, embedding: list[float] | None) -> MemoryRecord:
    return MemoryRecord(id=memory_id, content=f"memory {memory_id}", embedding=embedding)


def test_identical_vectors_score_one() -> None:
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_orthogonal_vectors_score_zero() -> None:
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_opposite_vectors_score_minus_one() -> None:
    assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)


def test_similarity_is_symmetric() -> None:
    a = [0.3, -1.2, 4.0, 0.05]
    b = [2.5, 0.7, -0.4, 1.9]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
    assert -1.0 <= cosine_similarity(a, b) <= 1.0


def test_zero_magnitude_scores_zero() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0


def test_length_mismatch_raises() -> None:
    with pytest.raises(ValueError, match="mismatch"):
        cosine_similarity([1.0], [1.0, 2.0])


def test_score_records_skips_missing_and_mismatched_embeddings() -> None:
    corpus = [
        _record(1, [1.0, 0.0]),
        _record(2, None),
        _record(3, [1.0, 0.0, 0.0]),
        _record(4, [0.0, 1.0]),
    ]
    scored = score_records([1.0, 0.0], corpus)
    assert [r.id for r, _ in scored] == [1, 4]


def test_vector_search_orders_by_score_and_truncates() -> None:
    corpus = [
        _record(1, [0.0, 1.0]),
        _record(2, [1.0, 0.0]),
        _record(3, [1.0, 1.0]),
    ]
    results = vector_search([1.0, 0.0], corpus, k=2)
    assert [r.id for r in results] == [2, 3]


def test_vector_search_min_score_filters() -> None:
    corpus = [_record(1, [1.0, 0.0]), _record(2, [1.0, 1.0]), _record(3, [0.0, 1.0])]
    results = vector_search([1.0, 0.0], corpus, k=15, min_score=0.5)
    assert [r.id for r in results] == [1, 2]
    assert cosine_similarity([1.0, 0.0], [1.0, 1.0]) == pytest.approx(1 / math.sqrt(2))


def test_vector_search_ties_keep_corpus_order() -> None:
    corpus = [_record(7, [2.0, 0.0]), _record(3, [1.0, 0.0])]
    assert [r.id for r in vector_search([1.0, 0.0], corpus)] == [7, 3]


def test_vector_search_empty_query() -> None:
    assert vector_search([], [_record(1, [1.0])]) == []
