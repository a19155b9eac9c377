"""SnipStore - de-duplicating library of documentation snippets."""

from .errors import MalformedBlockError, MergeConflictError, NotFoundError, SnipStoreError
from .library import SnippetLibrary
from .merge import Disposition, MergePolicy, MergeResolver
from .models import Entry, extract_code_blocks, generate_fingerprint
from .search import QueryIndex, SearchHit
from .storage import PutResult, RevisionHistory, SnippetStore

__version__ = "0.1.0"

__all__ = [
    "SnipStoreError",
    "MalformedBlockError",
    "MergeConflictError",
    "NotFoundError",
    "SnippetLibrary",
    "Disposition",
    "MergePolicy",
    "MergeResolver",
    "Entry",
    "extract_code_blocks",
    "generate_fingerprint",
    "QueryIndex",
    "SearchHit",
    "PutResult",
    "RevisionHistory",
    "SnippetStore",
]
