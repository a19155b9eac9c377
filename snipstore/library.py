"""Snippet library - main API."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from snipstore.ingest import DocumentParser, IngestReport, PendingConflict, SnippetIngestionPipeline
from snipstore.merge import Disposition, MergePolicy
from snipstore.models import Entry
from snipstore.storage import PutResult, SnippetStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".md", ".markdown")


class SnippetLibrary:
    """
    Searchable, de-duplicated library of documentation snippets.

    It provides:

    1. Stable ids (idempotent ingestion of Markdown notes)
    2. Collapse of identical snippets across documents
    3. Automatic merging of near-identical snippets, variants otherwise
    4. Tag lookup and ranked text search
    5. Append-only revision history
    """

    def __init__(
        self,
        storage_path: str = "snippets.duckdb",
        policy: Optional[MergePolicy] = None,
        max_heading_level: int = 6
    ):
        """
        Initialize the library.

        Args:
            storage_path: Path to DuckDB database file
            policy: Merge thresholds (default: MergePolicy())
            max_heading_level: Deepest heading level that starts a snippet
        """
        self.store = SnippetStore(db_path=storage_path, policy=policy)
        self.ingestion = SnippetIngestionPipeline(
            store=self.store,
            parser=DocumentParser(max_heading_level=max_heading_level)
        )

        logger.info(f"SnippetLibrary initialized (storage={storage_path})")

    # ============================================================================
    # Ingestion methods
    # ============================================================================

    def ingest_file(self, file_path: str) -> IngestReport:
        """
        Ingest a Markdown file.

        Idempotent: re-ingesting the same file won't create duplicates.

        Args:
            file_path: Path to the file

        Returns:
            IngestReport

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file type is not supported
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        if path.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise ValueError(f"Unsupported file type: {path.suffix}")

        return self.ingestion.ingest_markdown(path)

    def ingest_directory(
        self,
        directory: str,
        pattern: Optional[str] = None,
        recursive: bool = True
    ) -> List[IngestReport]:
        """
        Ingest all matching files from a directory.

        Files are processed in sorted order so the result does not depend on
        the file system. A file that fails is logged and skipped.

        Args:
            directory: Path to directory
            pattern: Glob pattern (default: every .md and .markdown file)
            recursive: Recursive search (default: True)

        Returns:
            One IngestReport per successfully ingested file
        """
        dir_path = Path(directory)
        glob = dir_path.rglob if recursive else dir_path.glob
        if pattern is None:
            files = sorted(p for p in glob("*") if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES)
        else:
            files = sorted(glob(pattern))

        if not files:
            logger.warning(f"No files found in {directory} matching {pattern or SUPPORTED_SUFFIXES}")
            return []

        logger.info(f"Found {len(files)} files to ingest")

        reports = []
        for file_path in tqdm(files, desc="Ingesting notes"):
            try:
                reports.append(self.ingest_file(str(file_path)))
            except (OSError, ValueError) as e:
                logger.error(f"Failed to ingest {file_path}: {e}")
                continue

        logger.info(f"Ingested {sum(len(r.results) for r in reports)} entries from {len(reports)} files")
        return reports

    def ingest_text(self, text: str, source_uri: Optional[str] = None) -> IngestReport:
        """
        Ingest Markdown held in memory.

        Args:
            text: Markdown document
            source_uri: Optional origin of the text

        Returns:
            IngestReport
        """
        return self.ingestion.ingest_document(text, source_uri=source_uri)

    def resolve_conflict(self, conflict: PendingConflict, disposition: Disposition) -> PutResult:
        """
        Store an entry that was held back, with a manual decision.

        Args:
            conflict: PendingConflict from an IngestReport
            disposition: Disposition.AUTO_MERGED or Disposition.VARIANT

        Returns:
            PutResult
        """
        result = self.store.put(conflict.entry, resolution=disposition)
        logger.info(f"Resolved conflict for '{conflict.entry.heading}' as {disposition.value}")
        return result

    # ============================================================================
    # Query methods
    # ============================================================================

    def search(self, query: str, top_k: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Text search over headings and prose.

        Args:
            query: Search terms
            top_k: Maximum number of results (default: all)

        Returns:
            List of result dicts with id, heading, snippet_preview, score
        """
        return [hit.to_dict() for hit in self.store.hits(query, limit=top_k)]

    def by_tag(self, tag: str) -> List[Entry]:
        """
        All entries carrying a tag.

        Args:
            tag: Tag (case-insensitive)

        Returns:
            Entries ordered by heading then id
        """
        ids = self.store.by_tag(tag)
        return sorted(
            (self.store.get(entry_id) for entry_id in ids),
            key=lambda e: (e.heading.casefold(), e.id)
        )

    def get(self, entry_id: str) -> Entry:
        """
        Get an entry by id (superseded ids resolve to their replacement).

        Raises:
            NotFoundError: If the id is unknown
        """
        return self.store.get(entry_id)

    def history(self, entry_id: str) -> List[Dict[str, Any]]:
        """
        Prior revisions of an entry, oldest first.

        Raises:
            NotFoundError: If the id is unknown
        """
        return [entry.to_dict() for entry in self.store.history(entry_id)]

    def find_near_duplicates(self, min_score: float = 0.5) -> List[Dict[str, Any]]:
        """
        Same-heading pairs with similar code, for manual review.

        Args:
            min_score: Minimum similarity to report

        Returns:
            List of pair dicts sorted by score descending
        """
        return self.store.find_near_duplicates(min_score=min_score)

    # ============================================================================
    # Statistics methods
    # ============================================================================

    def count_entries(self) -> int:
        """Number of current entries."""
        return len(self.store)

    def stats(self) -> Dict[str, Any]:
        """
        Get statistics for the library.

        Returns:
            Stats dict
        """
        return self.store.stats()

    # ============================================================================
    # Cleanup
    # ============================================================================

    def close(self):
        """Close database connection."""
        self.store.close()
