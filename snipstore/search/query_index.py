"""Tag lookup and ranked text search over current entries."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set

from snipstore.models import Entry, normalize_tag


@dataclass(frozen=True)
class SearchHit:
    """One row of a query result, ready for a presentation layer."""

    id: str
    heading: str
    snippet_preview: str
    score: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "heading": self.heading,
            "snippet_preview": self.snippet_preview,
            "score": self.score,
        }


class QueryIndex:
    """
    Inverted tag index plus case-insensitive text search.

    An index is built once from a set of current entries and never mutated;
    the store builds a new one whenever it commits a batch, so every id in
    the index refers to an entry in the same snapshot.
    """

    def __init__(self, entries: Iterable[Entry] = ()):
        """
        Build the index.

        Args:
            entries: Current (non-superseded) entries
        """
        self._entries: Dict[str, Entry] = {}
        self._tags: Dict[str, Set[str]] = {}
        self._text: Dict[str, str] = {}

        for entry in entries:
            self._entries[entry.id] = entry
            self._text[entry.id] = f"{entry.heading}\n{entry.body_text}".casefold()
            for tag in entry.tags:
                self._tags.setdefault(tag, set()).add(entry.id)

    def __len__(self) -> int:
        return len(self._entries)

    def by_tag(self, tag: str) -> FrozenSet[str]:
        """
        Ids of all entries carrying a tag.

        Args:
            tag: Tag (case-insensitive)

        Returns:
            Set of entry ids (empty if the tag is unknown)
        """
        return frozenset(self._tags.get(normalize_tag(tag), ()))

    def tag_counts(self) -> Dict[str, int]:
        """Number of entries per tag, sorted by tag."""
        return {tag: len(ids) for tag, ids in sorted(self._tags.items())}

    def score(self, entry_id: str, terms: List[str]) -> int:
        """Number of query terms found in an entry's heading or prose."""
        text = self._text[entry_id]
        return sum(1 for term in terms if term in text)

    def search(self, text: str) -> List[str]:
        """
        Find entries whose heading or prose contains the query terms.

        Each whitespace-separated term is matched as a case-insensitive
        substring. Entries are ranked by number of matching terms, then by
        most recent ingest time, then by id.

        Args:
            text: Query string

        Returns:
            Ranked list of entry ids
        """
        return [hit.id for hit in self.hits(text)]

    def hits(self, text: str, limit: Optional[int] = None) -> List[SearchHit]:
        """
        Ranked search results with heading and preview.

        Args:
            text: Query string
            limit: Maximum number of hits (default: all)

        Returns:
            List of SearchHits
        """
        terms = list(dict.fromkeys(text.casefold().split()))
        if not terms:
            return []

        scored = []
        for entry_id in self._entries:
            score = self.score(entry_id, terms)
            if score > 0:
                scored.append((entry_id, score))

        # Stable sorts, least significant key first
        scored.sort(key=lambda item: item[0])
        scored.sort(key=lambda item: self._entries[item[0]].ingested_at or datetime.min, reverse=True)
        scored.sort(key=lambda item: item[1], reverse=True)

        if limit is not None:
            scored = scored[:limit]

        return [
            SearchHit(
                id=entry_id,
                heading=self._entries[entry_id].heading,
                snippet_preview=self._entries[entry_id].snippet_preview,
                score=score,
            )
            for entry_id, score in scored
        ]
