"""Merge and de-duplication of near-duplicate entries."""

from .resolver import Disposition, MergeDecision, MergePolicy, MergeResolver

__all__ = [
    "Disposition",
    "MergeDecision",
    "MergePolicy",
    "MergeResolver",
]
