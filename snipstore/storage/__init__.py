"""Storage for snippet entries."""

from .duckdb_backend import DuckDBBackend
from .snippet_store import PutResult, RevisionHistory, SnippetStore, StoreBatch

__all__ = [
    "DuckDBBackend",
    "PutResult",
    "RevisionHistory",
    "SnippetStore",
    "StoreBatch",
]
