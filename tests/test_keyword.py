"""Tests for keyword search over memories."""

from datetime import UTC, datetime, timedelta

from src.memory.keyword import keyword_search, score, tokenize
from src.memory.models import MemoryRecord

BASE = datetime(2025, 1, 1, tzinfo=UTC)


def _record(memory_id: int, content: str, **kwargs) -> MemoryRecord:
    kwargs.setdefault("timestamp", BASE + timedelta(days=memory_id))
    return MemoryRecord(id=memory_id, content=content, **kwargs)


def test_tokenize_drops_short_tokens() -> None:
    assert tokenize("I do my WORK at a lab") == ["work", "lab"]


def test_blank_query_matches_nothing() -> None:
    assert keyword_search("   ", [_record(1, "anything")]) == []


def test_or_semantics_across_fields() -> None:
    corpus = [
        _record(1, "Works as a data engineer"),
        _record(2, "Groceries", category="shopping"),
        _record(3, "Weekend plans", tags=["hiking"]),
        _record(4, "Unrelated"),
    ]
    results = keyword_search("engineer shopping hiking", corpus)
    assert {r.id for r in results} == {1, 2, 3}


def test_media_name_matches() -> None:
    corpus = [_record(1, "Uploaded file", media_name="resume.pdf")]
    assert [r.id for r in keyword_search("resume", corpus)] == [1]


def test_more_hits_rank_higher() -> None:
    corpus = [
        _record(1, "I like movies"),
        _record(2, "Favorite movies list", category="movies", tags=["movies"]),
    ]
    results = keyword_search("movies", corpus)
    assert [r.id for r in results] == [2, 1]


def test_ties_break_newest_first() -> None:
    corpus = [_record(1, "coffee in the morning"), _record(5, "coffee after lunch")]
    assert [r.id for r in keyword_search("coffee", corpus)] == [5, 1]


def test_short_query_falls_back_to_substring() -> None:
    corpus = [_record(1, "Lives in NY"), _record(2, "Lives in LA")]
    assert [r.id for r in keyword_search("ny", corpus)] == [1]


def test_score_counts_fields_per_token() -> None:
    record = _record(1, "work notes", category="work", tags=["work-log"])
    assert score(record, ["work"]) == 3
    assert score(record, ["notes", "missing"]) == 1


# -- Recall and stability ----------------------------------------------------


def _fruit_corpus() -> list[MemoryRecord]:
    return [
        _record(1, "I love mangoes and work at Acme", category="personal", tags=["fruit"]),
        _record(2, "Meeting notes from Tuesday", category="work"),
        _record(3, "Dentist appointment next week", tags=["health"]),
    ]


def test_recall_on_single_word() -> None:
    corpus = _fruit_corpus()
    assert [r.content for r in keyword_search("mangoes", corpus)] == [
        "I love mangoes and work at Acme"
    ]


def test_nonexistent_term_finds_nothing() -> None:
    assert keyword_search("xyz-nonexistent", _fruit_corpus()) == []


def test_repeated_search_is_stable() -> None:
    corpus = _fruit_corpus()
    first = keyword_search("work notes week", corpus)
    second = keyword_search("work notes week", corpus)
    assert [r.id for r in first] == [r.id for r in second]
    assert len(first) == 3
