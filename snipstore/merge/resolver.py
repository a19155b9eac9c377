"""Near-duplicate resolution for entries that share a heading."""

import logging
from dataclasses import dataclass
from difflib import SequenceMatcher
from enum import Enum
from typing import Any, Dict, List, Sequence

import numpy as np

from snipstore.errors import MergeConflictError
from snipstore.models import Entry, canonical_lines, heading_key

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class Disposition(str, Enum):
    """What the store did with an entry passed to ``put``."""

    INSERTED = "inserted"
    UNCHANGED = "unchanged"
    METADATA_MERGED = "metadata_merged"
    AUTO_MERGED = "auto_merged"
    VARIANT = "variant"


@dataclass(frozen=True)
class MergePolicy:
    """
    Thresholds for near-duplicate resolution.

    Similarity at or above ``auto_merge_threshold`` merges automatically.
    Similarity in ``[auto_merge_threshold - conflict_margin,
    auto_merge_threshold)`` is ambiguous and needs a manual decision.
    Anything lower keeps both entries as variants.

    Attributes:
        auto_merge_threshold: Minimum similarity for an automatic merge
        conflict_margin: Width of the ambiguous band below the threshold
    """

    auto_merge_threshold: float = 0.8
    conflict_margin: float = 0.05

    def __post_init__(self):
        """Validate thresholds."""
        if not 0.0 <= self.auto_merge_threshold <= 1.0:
            raise ValueError(
                f"auto_merge_threshold must be between 0.0 and 1.0, got {self.auto_merge_threshold}"
            )
        if not 0.0 <= self.conflict_margin <= self.auto_merge_threshold:
            raise ValueError(
                f"conflict_margin must be between 0.0 and auto_merge_threshold, got {self.conflict_margin}"
            )

    @property
    def conflict_floor(self) -> float:
        return self.auto_merge_threshold - self.conflict_margin


@dataclass(frozen=True)
class MergeDecision:
    """Outcome of comparing two same-heading entries."""

    disposition: Disposition
    score: float


def _line_key(line: str) -> str:
    return " ".join(line.split())


def _is_subsequence(needle: Sequence[str], haystack: Sequence[str]) -> bool:
    remaining = iter(haystack)
    return all(any(item == candidate for candidate in remaining) for item in needle)


class MergeResolver:
    """
    Decide and perform merges between near-duplicate entries.

    Similarity is the line-level overlap (Jaccard index) of the canonical
    code lines of both entries. All operations are pure and deterministic.
    """

    def __init__(self, policy: MergePolicy = None):
        """
        Initialize resolver.

        Args:
            policy: Merge thresholds (default: MergePolicy())
        """
        self.policy = policy or MergePolicy()

    @staticmethod
    def code_lines(entry: Entry) -> List[str]:
        """Canonical code lines of an entry, across all blocks."""
        lines = []
        for block in entry.code_blocks:
            lines.extend(canonical_lines(block))
        return lines

    def similarity(self, first: Entry, second: Entry) -> float:
        """
        Line-level overlap ratio of two entries' code.

        Returns:
            Score in [0.0, 1.0]; 1.0 when both have no code
        """
        a = set(self.code_lines(first))
        b = set(self.code_lines(second))
        if not a and not b:
            return 1.0
        return len(a & b) / len(a | b)

    def decide(self, existing: Entry, incoming: Entry) -> MergeDecision:
        """
        Decide how to reconcile two entries under the same heading.

        Args:
            existing: Entry already in the store
            incoming: Entry being inserted

        Returns:
            MergeDecision with AUTO_MERGED or VARIANT

        Raises:
            MergeConflictError: If the score falls in the ambiguous band
        """
        score = self.similarity(existing, incoming)

        if score >= self.policy.auto_merge_threshold:
            return MergeDecision(Disposition.AUTO_MERGED, score)

        if score >= self.policy.conflict_floor:
            logger.warning(
                f"Ambiguous similarity {score:.3f} for '{incoming.heading}', manual resolution required"
            )
            raise MergeConflictError(existing.id, incoming.id, score)

        return MergeDecision(Disposition.VARIANT, score)

    def contains(self, existing: Entry, incoming: Entry) -> bool:
        """True if every code block of ``incoming`` is already inside ``existing``."""
        if len(incoming.code_blocks) > len(existing.code_blocks):
            return False
        return all(
            _is_subsequence(canonical_lines(inner), canonical_lines(outer))
            for inner, outer in zip(incoming.code_blocks, existing.code_blocks)
        )

    def merge(self, existing: Entry, incoming: Entry) -> Entry:
        """
        Build the superset of two near-duplicate entries.

        Code blocks are merged pairwise by position, keeping every line of
        both in order; unmatched trailing blocks are appended. Tags and links
        are unioned. Merging an entry that is already contained returns
        ``existing`` unchanged.

        Args:
            existing: Entry already in the store
            incoming: Entry being merged in

        Returns:
            Merged entry (normalized, with a fresh id)
        """
        if self.contains(existing, incoming):
            return existing.with_metadata_from(incoming)

        a_blocks, b_blocks = existing.code_blocks, incoming.code_blocks
        blocks = []
        for index in range(max(len(a_blocks), len(b_blocks))):
            if index >= len(a_blocks):
                blocks.append(b_blocks[index])
            elif index >= len(b_blocks):
                blocks.append(a_blocks[index])
            else:
                blocks.append(self._merge_block(a_blocks[index], b_blocks[index]))

        return Entry.create(
            heading=existing.heading,
            body_text=existing.body_text or incoming.body_text,
            code_blocks=blocks,
            tags=existing.tags | incoming.tags,
            source_links=existing.source_links + incoming.source_links,
        )

    def _merge_block(self, first: str, second: str) -> str:
        """Merge two code blocks line by line into a common supersequence."""
        a_lines = first.split("\n")
        b_lines = second.split("\n")
        matcher = SequenceMatcher(
            None,
            [_line_key(line) for line in a_lines],
            [_line_key(line) for line in b_lines],
            autojunk=False,
        )

        merged: List[str] = []
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag in ("equal", "delete", "replace"):
                merged.extend(a_lines[i1:i2])
            if tag in ("insert", "replace"):
                merged.extend(b_lines[j1:j2])
        return "\n".join(merged)

    def similarity_matrix(self, entries: Sequence[Entry]) -> np.ndarray:
        """
        Pairwise similarity of a list of entries.

        Args:
            entries: Entries to compare

        Returns:
            Symmetric (n, n) array of similarity scores
        """
        line_sets = [set(self.code_lines(entry)) for entry in entries]
        vocabulary = {line: i for i, line in enumerate(sorted(set().union(*line_sets)))}

        membership = np.zeros((len(entries), len(vocabulary)), dtype=np.float64)
        for row, lines in enumerate(line_sets):
            for line in lines:
                membership[row, vocabulary[line]] = 1.0

        intersection = membership @ membership.T
        sizes = membership.sum(axis=1)
        union = sizes[:, None] + sizes[None, :] - intersection

        return np.divide(
            intersection,
            union,
            out=np.ones_like(intersection),
            where=union > 0,
        )

    def near_duplicate_pairs(
        self,
        entries: Sequence[Entry],
        min_score: float = 0.0
    ) -> List[Dict[str, Any]]:
        """
        Find same-heading pairs across a corpus.

        Args:
            entries: Entries to scan
            min_score: Minimum similarity to report

        Returns:
            List of pair dicts sorted by score descending, then ids
        """
        groups: Dict[str, List[Entry]] = {}
        for entry in entries:
            groups.setdefault(heading_key(entry.heading), []).append(entry)

        pairs = []
        for group in groups.values():
            if len(group) < 2:
                continue
            group = sorted(group, key=lambda e: e.id)
            scores = self.similarity_matrix(group)
            for i in range(len(group)):
                for j in range(i + 1, len(group)):
                    score = float(scores[i, j])
                    if score >= min_score:
                        pairs.append({
                            "heading": group[i].heading,
                            "first_id": group[i].id,
                            "second_id": group[j].id,
                            "score": score,
                        })

        pairs.sort(key=lambda p: (-p["score"], p["first_id"], p["second_id"]))
        return pairs
