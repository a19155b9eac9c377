"""Test document ingestion into the store."""

import pytest

from snipstore.errors import MalformedBlockError, MergeConflictError
from snipstore.ingest import SnippetIngestionPipeline
from snipstore.merge import Disposition, MergePolicy
from snipstore.models import Entry
from snipstore.storage import SnippetStore

MIXED = """## Good

```python
print("ok")
```

## Also good

Prose only, no code.

## Broken

```python
print("never closed")
"""

AMBIGUOUS = """## Counter

```python
a = 1
b = 2
c = 3
```

## Counter

```python
a = 1
b = 2
c = 3
d = 4
```
"""


@pytest.fixture
def store(tmp_path):
    store = SnippetStore(
        db_path=str(tmp_path / "pipeline.duckdb"),
        policy=MergePolicy(auto_merge_threshold=0.8, conflict_margin=0.1),
    )
    yield store
    store.close()


@pytest.fixture
def pipeline(store):
    return SnippetIngestionPipeline(store=store)


def test_malformed_section_skipped_batch_continues(pipeline, store):
    report = pipeline.ingest_document(MIXED, source_uri="memory://mixed")

    assert report.count(Disposition.INSERTED) == 2
    assert len(report.skipped) == 1
    assert report.skipped[0].heading == "Broken"
    assert isinstance(report.skipped[0].error, MalformedBlockError)
    assert len(store) == 2
    assert report.source_uri == "memory://mixed"
    assert report.content_hash is not None


def test_ambiguous_entry_held_back(pipeline, store):
    report = pipeline.ingest_document(AMBIGUOUS)

    assert report.count(Disposition.INSERTED) == 1
    assert len(report.conflicts) == 1
    conflict = report.conflicts[0]
    assert isinstance(conflict.error, MergeConflictError)
    assert conflict.error.score == pytest.approx(0.75)
    assert conflict.entry.id not in store
    assert len(store) == 1

    result = store.put(conflict.entry, resolution=Disposition.AUTO_MERGED)
    assert result.disposition == Disposition.AUTO_MERGED
    assert len(store) == 1
    assert "d = 4" in store.get(conflict.entry.id).code_blocks[0]


def test_reingest_reports_unchanged(pipeline, store):
    pipeline.ingest_document(MIXED)
    records = store.backend.count_records()

    report = pipeline.ingest_document(MIXED)

    assert report.count(Disposition.UNCHANGED) == 2
    assert report.count(Disposition.INSERTED) == 0
    assert store.backend.count_records() == records


def test_ingest_markdown_file(pipeline, store, tmp_path):
    path = tmp_path / "note.md"
    path.write_text(MIXED, encoding="utf-8")

    report = pipeline.ingest_markdown(path)

    assert report.source_uri == f"file://{path.absolute()}"
    assert len(report.entry_ids) == 2


def test_empty_document(pipeline, store):
    report = pipeline.ingest_document("   \n\n")

    assert report.results == []
    assert len(store) == 0


def test_ingest_entries(pipeline, store):
    entries = [
        Entry.create("Read a file", code_blocks=["with open(path) as f:\n    data = f.read()"]),
        Entry.create("Read a file", code_blocks=["with open(path) as f:\n    data = f.read()"], tags=["io"]),
    ]

    report = pipeline.ingest_entries(entries, source_uri="external")

    assert [r.disposition for r in report.results] == [Disposition.INSERTED, Disposition.METADATA_MERGED]
    assert len(report.entry_ids) == 1
    assert store.get(entries[0].id).tags == frozenset({"io"})


def test_report_to_dict(pipeline):
    report = pipeline.ingest_document(MIXED, source_uri="memory://mixed")

    data = report.to_dict()

    assert data["dispositions"]["inserted"] == 2
    assert data["skipped"] == ["Broken"]
    assert data["conflicts"] == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
