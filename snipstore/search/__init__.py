"""Query support for the snippet store."""

from .query_index import QueryIndex, SearchHit

__all__ = ["QueryIndex", "SearchHit"]
