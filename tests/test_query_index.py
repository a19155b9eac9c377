"""Test tag lookup and ranked search."""

from dataclasses import replace
from datetime import datetime

import pytest

from snipstore.models import Entry
from snipstore.search import QueryIndex


def stamped(heading, body, day, tags=(), code="print('hi')"):
    entry = Entry.create(heading, body, [code], tags=tags)
    return replace(entry, ingested_at=datetime(2024, 1, day))


@pytest.fixture
def entries():
    return [
        stamped("Custom key mapping", "Rename Codable keys with CodingKeys.", 1, tags=["swift", "Codable"]),
        stamped("Encoding to JSON", "Encode a Codable value.", 3, tags=["swift", "json"]),
        stamped("Decoding dates", "Set a date decoding strategy.", 2, tags=["swift"]),
        stamped("Reading files", "Open a file with a context manager.", 4, tags=["python"]),
    ]


@pytest.fixture
def index(entries):
    return QueryIndex(entries)


def test_by_tag(index, entries):
    swift_ids = {e.id for e in entries[:3]}

    assert index.by_tag("swift") == swift_ids
    assert index.by_tag("SWIFT") == swift_ids
    assert index.by_tag("codable") == {entries[0].id}
    assert index.by_tag("rust") == frozenset()


def test_tag_counts(index):
    counts = index.tag_counts()

    assert counts == {"codable": 1, "json": 1, "python": 1, "swift": 3}
    assert list(counts) == sorted(counts)


def test_search_is_case_insensitive_substring(index, entries):
    assert index.search("codable") == index.search("CODABLE")
    assert set(index.search("cod")) == {entries[0].id, entries[1].id, entries[2].id}


def test_search_matches_heading_and_prose(index, entries):
    assert index.search("mapping") == [entries[0].id]
    assert index.search("context manager") == [entries[3].id]


def test_search_ranks_by_matched_terms_then_recency(index, entries):
    # Both match "codable"; only the older one also matches "keys"
    assert index.search("codable keys") == [entries[0].id, entries[1].id]
    # Equal scores: most recently ingested first
    assert index.search("codable") == [entries[1].id, entries[0].id]


def test_search_ties_broken_by_id():
    first = stamped("Alpha", "shared term", 1, code="a = 1")
    second = stamped("Beta", "shared term", 1, code="b = 2")

    index = QueryIndex([second, first])

    assert index.search("shared") == sorted([first.id, second.id])


def test_search_repeated_terms_count_once(index, entries):
    hits = index.hits("codable codable")

    assert [hit.score for hit in hits] == [1, 1]


def test_search_no_match_or_empty_query(index):
    assert index.search("haskell") == []
    assert index.search("   ") == []


def test_hits_limit_and_preview(index, entries):
    hits = index.hits("swift codable json encode", limit=1)

    assert len(hits) == 1
    assert hits[0].id == entries[1].id
    assert hits[0].heading == "Encoding to JSON"
    assert hits[0].snippet_preview == "print('hi')"
    assert hits[0].to_dict()["score"] == hits[0].score


def test_unique_ids_in_results(index):
    results = index.search("a e i o u")

    assert len(results) == len(set(results))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
