"""Content-addressed snippet store with revision history."""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Sequence, Set

from snipstore.errors import MergeConflictError, NotFoundError
from snipstore.merge import Disposition, MergeDecision, MergePolicy, MergeResolver
from snipstore.models import VARIANT_TAG, Entry, canonical_code, heading_key, utcnow
from snipstore.search import QueryIndex, SearchHit
from snipstore.storage.duckdb_backend import DuckDBBackend

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PutResult:
    """
    Outcome of ``SnippetStore.put``.

    Attributes:
        disposition: What happened to the entry
        entry: Current entry holding the inserted content
        score: Similarity to the compared sibling (merges and variants only)
    """

    disposition: Disposition
    entry: Entry
    score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "disposition": self.disposition.value,
            "id": self.entry.id,
            "heading": self.entry.heading,
            "score": self.score,
        }


class RevisionHistory:
    """
    Prior revisions of an entry, oldest first.

    Iterating is lazy and can be restarted; the underlying chain belongs to
    an immutable snapshot, so later writes never change it.
    """

    def __init__(self, entry_id: str, chain: Sequence[Entry]):
        self.entry_id = entry_id
        self._chain = chain

    def __iter__(self) -> Iterator[Entry]:
        for entry in self._chain:
            yield entry

    def __len__(self) -> int:
        return len(self._chain)

    def __repr__(self) -> str:
        return f"RevisionHistory(id={self.entry_id[:8]}..., revisions={len(self._chain)})"


@dataclass(frozen=True)
class _Snapshot:
    """Immutable view of the store served to readers."""

    entries: Dict[str, Entry]
    revisions: Dict[str, List[Entry]]
    aliases: Dict[str, str]
    headings: Dict[str, FrozenSet[str]]
    index: QueryIndex

    def resolve(self, entry_id: str) -> Optional[str]:
        """Map an id (current or superseded) to the current id."""
        if entry_id in self.entries:
            return entry_id
        current = self.aliases.get(entry_id)
        if current is not None and current in self.entries:
            return current
        return None


def _heading_map(entries: Dict[str, Entry]) -> Dict[str, FrozenSet[str]]:
    headings: Dict[str, Set[str]] = {}
    for entry in entries.values():
        headings.setdefault(heading_key(entry.heading), set()).add(entry.id)
    return {key: frozenset(ids) for key, ids in headings.items()}


class StoreBatch:
    """
    Working copy of the store for one writer.

    Collections are copied shallowly and replaced (never mutated in place)
    when changed, so the snapshot the batch started from stays intact for
    concurrent readers and for abort.
    """

    def __init__(self, store: "SnippetStore", base: _Snapshot):
        self.store = store
        self.resolver = store.resolver
        self.entries: Dict[str, Entry] = dict(base.entries)
        self.revisions: Dict[str, List[Entry]] = dict(base.revisions)
        self.aliases: Dict[str, str] = dict(base.aliases)
        self.headings: Dict[str, FrozenSet[str]] = dict(base.headings)

        self.touched: Set[str] = set()
        self.removed: Set[str] = set()
        self.changed_aliases: Dict[str, str] = {}

    # ============================================================================
    # Reads against the working copy
    # ============================================================================

    def _resolve(self, entry_id: str) -> Optional[str]:
        if entry_id in self.entries:
            return entry_id
        current = self.aliases.get(entry_id)
        return current if current in self.entries else None

    def get(self, entry_id: str) -> Entry:
        """Current entry for an id, including uncommitted changes."""
        current = self._resolve(entry_id)
        if current is None:
            raise NotFoundError(entry_id)
        return self.entries[current]

    @property
    def has_changes(self) -> bool:
        return bool(self.touched or self.removed or self.changed_aliases)

    # ============================================================================
    # Writes
    # ============================================================================

    def put(self, entry: Entry, resolution: Optional[Disposition] = None) -> PutResult:
        """
        Insert an entry, merging or branching as needed.

        Nothing is changed when an error is raised.

        Args:
            entry: Entry to insert (normalized here)
            resolution: Manual decision for a near-duplicate, either
                        Disposition.AUTO_MERGED or Disposition.VARIANT

        Returns:
            PutResult

        Raises:
            MergeConflictError: If the near-duplicate decision is ambiguous,
                                or the same fingerprint carries different code
            ValueError: If ``resolution`` is not a near-duplicate decision
        """
        if resolution is not None and resolution not in (Disposition.AUTO_MERGED, Disposition.VARIANT):
            raise ValueError(f"Resolution must be AUTO_MERGED or VARIANT, got {resolution}")

        incoming = entry.normalize()
        now = self.store.clock()

        current_id = self._resolve(incoming.id)
        if current_id is not None:
            existing = self.entries[current_id]
            if current_id == incoming.id and (
                canonical_code(existing.code_blocks) != canonical_code(incoming.code_blocks)
            ):
                raise MergeConflictError(
                    existing.id, incoming.id, self.resolver.similarity(existing, incoming)
                )
            return self._merge_metadata(existing, incoming, now)

        siblings = sorted(
            (self.entries[i] for i in self.headings.get(heading_key(incoming.heading), ())),
            key=lambda e: e.id,
        )
        if not siblings:
            return self._insert(incoming, now)

        scored = sorted(
            ((self.resolver.similarity(sibling, incoming), sibling) for sibling in siblings),
            key=lambda pair: (-pair[0], pair[1].id),
        )
        score, best = scored[0]

        if resolution is None:
            decision = self.resolver.decide(best, incoming)
        else:
            decision = MergeDecision(resolution, score)

        if decision.disposition == Disposition.AUTO_MERGED:
            return self._auto_merge(best, incoming, now, decision.score)
        return self._add_variant(siblings, incoming, now, decision.score)

    def _insert(self, incoming: Entry, now: datetime) -> PutResult:
        entry = replace(incoming, ingested_at=now, revision=1, previous_id=None)
        self._set_current(entry)
        return PutResult(Disposition.INSERTED, entry)

    def _merge_metadata(self, existing: Entry, incoming: Entry, now: datetime) -> PutResult:
        merged = existing.with_metadata_from(incoming)
        if merged == existing:
            return PutResult(Disposition.UNCHANGED, existing)

        chain = self.revisions.get(existing.id, []) + [existing]
        current = replace(merged, ingested_at=now, revision=len(chain) + 1, previous_id=existing.id)
        self.revisions[existing.id] = chain
        self._set_current(current)
        return PutResult(Disposition.METADATA_MERGED, current)

    def _auto_merge(self, existing: Entry, incoming: Entry, now: datetime, score: float) -> PutResult:
        merged = self.resolver.merge(existing, incoming)

        if merged.id == existing.id:
            # Incoming code was already contained in the existing entry
            current = self._merge_metadata(existing, merged, now).entry
        else:
            current = self._supersede(existing, merged, now)

        if incoming.id != current.id:
            self._alias(incoming.id, current.id)

        logger.info(f"Auto-merged '{incoming.heading}' into {current.id[:12]} (similarity={score:.3f})")
        return PutResult(Disposition.AUTO_MERGED, current, score)

    def _supersede(self, old: Entry, merged: Entry, now: datetime) -> Entry:
        """Replace ``old`` with ``merged``, keeping old versions as revisions."""
        chain = self.revisions.get(old.id, []) + [old]

        other = self.entries.get(merged.id)
        if other is not None:
            # The merged code matches another current entry; fold both lineages
            chain = self.revisions.get(other.id, []) + [other] + chain
            merged = other.with_metadata_from(merged)

        chain.sort(key=lambda e: e.ingested_at or datetime.min)
        chain = [replace(e, revision=position) for position, e in enumerate(chain, start=1)]

        current = replace(merged, ingested_at=now, revision=len(chain) + 1, previous_id=old.id)
        self._retire(old.id, current.id)
        self.revisions[current.id] = chain
        self._set_current(current)
        return current

    def _add_variant(
        self,
        siblings: List[Entry],
        incoming: Entry,
        now: datetime,
        score: float
    ) -> PutResult:
        for sibling in siblings:
            if not sibling.is_variant:
                self._merge_metadata(sibling, sibling.with_tags(VARIANT_TAG), now)

        entry = replace(incoming.with_tags(VARIANT_TAG), ingested_at=now, revision=1, previous_id=None)
        self._set_current(entry)

        logger.info(f"Kept '{incoming.heading}' as variant {entry.id[:12]} (similarity={score:.3f})")
        return PutResult(Disposition.VARIANT, entry, score)

    def _set_current(self, entry: Entry):
        self.entries[entry.id] = entry
        key = heading_key(entry.heading)
        self.headings[key] = self.headings.get(key, frozenset()) | {entry.id}
        self.touched.add(entry.id)

    def _retire(self, old_id: str, new_id: str):
        old = self.entries.pop(old_id)
        self.revisions.pop(old_id, None)

        key = heading_key(old.heading)
        remaining = self.headings.get(key, frozenset()) - {old_id}
        if remaining:
            self.headings[key] = remaining
        else:
            self.headings.pop(key, None)

        self.touched.discard(old_id)
        self.removed.add(old_id)

        self._alias(old_id, new_id)
        for superseded, current in list(self.aliases.items()):
            if current == old_id:
                self._alias(superseded, new_id)

    def _alias(self, superseded_id: str, current_id: str):
        self.aliases[superseded_id] = current_id
        self.changed_aliases[superseded_id] = current_id

    def snapshot(self) -> _Snapshot:
        """Freeze the working copy into a snapshot for readers."""
        return _Snapshot(
            entries=self.entries,
            revisions=self.revisions,
            aliases=self.aliases,
            headings=self.headings,
            index=QueryIndex(self.entries.values()),
        )


class SnippetStore:
    """
    Content-addressed store of snippet entries.

    Entries are keyed by fingerprint. Writes go through ``batch()`` (or the
    single-entry ``put``), which serializes writers, applies every change to
    a private copy, persists it in one DuckDB transaction and then swaps the
    new snapshot in. Readers always see a complete snapshot.
    """

    def __init__(
        self,
        db_path: str = "snippets.duckdb",
        policy: Optional[MergePolicy] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Open (or create) a store.

        Args:
            db_path: Path to the DuckDB database file (":memory:" for none)
            policy: Merge thresholds (default: MergePolicy())
            clock: Timestamp source for ingest times (default: UTC now)
        """
        self.db_path = db_path
        self.backend = DuckDBBackend(db_path=db_path)
        self.resolver = MergeResolver(policy)
        self.clock = clock or utcnow
        self._write_lock = threading.Lock()

        entries, revisions, aliases = self.backend.load()
        self._snapshot = _Snapshot(
            entries=entries,
            revisions=revisions,
            aliases=aliases,
            headings=_heading_map(entries),
            index=QueryIndex(entries.values()),
        )
        logger.info(f"SnippetStore opened at {db_path} ({len(entries)} entries)")

    # ============================================================================
    # Writes
    # ============================================================================

    @contextmanager
    def batch(self) -> Iterator[StoreBatch]:
        """
        Apply several writes atomically.

        If the block raises, nothing is persisted and readers never see any
        of its changes.

        Yields:
            StoreBatch to call ``put`` on
        """
        with self._write_lock:
            batch = StoreBatch(self, self._snapshot)
            yield batch
            self._commit(batch)

    def _commit(self, batch: StoreBatch):
        if not batch.has_changes:
            return

        lineages = {
            entry_id: batch.revisions.get(entry_id, []) + [batch.entries[entry_id]]
            for entry_id in sorted(batch.touched)
            if entry_id in batch.entries
        }
        self.backend.write(lineages, sorted(batch.removed), batch.changed_aliases)
        self._snapshot = batch.snapshot()

        logger.info(
            f"Committed batch: {len(lineages)} updated, {len(batch.removed)} superseded, "
            f"{len(self._snapshot.entries)} entries total"
        )

    def put(self, entry: Entry, resolution: Optional[Disposition] = None) -> PutResult:
        """
        Insert one entry in its own batch.

        See ``StoreBatch.put`` for the merge rules.
        """
        with self.batch() as batch:
            return batch.put(entry, resolution=resolution)

    # ============================================================================
    # Reads
    # ============================================================================

    def get(self, entry_id: str) -> Entry:
        """
        Get the current entry for an id.

        Superseded ids resolve to the entry that replaced them.

        Raises:
            NotFoundError: If the id is unknown
        """
        snapshot = self._snapshot
        current = snapshot.resolve(entry_id)
        if current is None:
            raise NotFoundError(entry_id)
        return snapshot.entries[current]

    def history(self, entry_id: str) -> RevisionHistory:
        """
        Prior revisions of an entry, oldest first.

        Raises:
            NotFoundError: If the id is unknown
        """
        snapshot = self._snapshot
        current = snapshot.resolve(entry_id)
        if current is None:
            raise NotFoundError(entry_id)
        return RevisionHistory(current, snapshot.revisions.get(current, []))

    def entries(self) -> List[Entry]:
        """All current entries, ordered by heading then id."""
        return sorted(self._snapshot.entries.values(), key=lambda e: (heading_key(e.heading), e.id))

    def by_tag(self, tag: str) -> FrozenSet[str]:
        """Ids of current entries carrying ``tag``."""
        return self._snapshot.index.by_tag(tag)

    def search(self, text: str) -> List[str]:
        """Ranked ids of entries whose heading or prose matches ``text``."""
        return self._snapshot.index.search(text)

    def hits(self, text: str, limit: Optional[int] = None) -> List[SearchHit]:
        """Ranked search results with heading and preview."""
        return self._snapshot.index.hits(text, limit=limit)

    def find_near_duplicates(self, min_score: float = 0.5) -> List[Dict[str, Any]]:
        """
        Same-heading pairs across the whole store with similar code.

        Args:
            min_score: Minimum similarity to report

        Returns:
            List of pair dicts sorted by score descending
        """
        return self.resolver.near_duplicate_pairs(list(self._snapshot.entries.values()), min_score)

    def stats(self) -> Dict[str, Any]:
        """
        Get statistics for the store.

        Returns:
            Stats dict
        """
        snapshot = self._snapshot
        return {
            "entries": len(snapshot.entries),
            "revisions": sum(len(chain) for chain in snapshot.revisions.values()),
            "superseded": len(snapshot.aliases),
            "headings": len(snapshot.headings),
            "variants": sum(1 for e in snapshot.entries.values() if e.is_variant),
            "tags": snapshot.index.tag_counts(),
        }

    def __len__(self) -> int:
        return len(self._snapshot.entries)

    def __contains__(self, entry_id: str) -> bool:
        return self._snapshot.resolve(entry_id) is not None

    # ============================================================================
    # Cleanup
    # ============================================================================

    def close(self):
        """Close database connection."""
        self.backend.close()

    def __enter__(self) -> "SnippetStore":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
