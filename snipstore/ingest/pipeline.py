"""Snippet ingestion pipeline."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from snipstore.errors import MalformedBlockError, MergeConflictError
from snipstore.ingest.document_parser import DocumentParser, RawSection
from snipstore.merge import Disposition
from snipstore.models import Entry, generate_text_hash
from snipstore.storage import PutResult, SnippetStore, StoreBatch

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class SkippedSection:
    """A section that could not be turned into an entry."""

    heading: str
    error: MalformedBlockError


@dataclass
class PendingConflict:
    """An entry held back because its merge decision was ambiguous."""

    entry: Entry
    error: MergeConflictError


@dataclass
class IngestReport:
    """
    Summary of one ingest batch.

    Attributes:
        source_uri: Where the sections came from (if known)
        content_hash: Hash of the source document (if ingested from text)
        results: One PutResult per stored entry, in order
        skipped: Sections with malformed code fences
        conflicts: Entries waiting for manual resolution
    """

    source_uri: Optional[str] = None
    content_hash: Optional[str] = None
    results: List[PutResult] = field(default_factory=list)
    skipped: List[SkippedSection] = field(default_factory=list)
    conflicts: List[PendingConflict] = field(default_factory=list)

    def count(self, disposition: Disposition) -> int:
        """Number of entries that ended with ``disposition``."""
        return sum(1 for r in self.results if r.disposition == disposition)

    @property
    def entry_ids(self) -> List[str]:
        """Current ids touched by this batch, without repeats."""
        return list(dict.fromkeys(r.entry.id for r in self.results))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_uri": self.source_uri,
            "content_hash": self.content_hash,
            "dispositions": {d.value: self.count(d) for d in Disposition},
            "skipped": [s.heading for s in self.skipped],
            "conflicts": [c.entry.heading for c in self.conflicts],
        }


class SnippetIngestionPipeline:
    """
    Turn documents into entries and feed them to the store.

    Each call runs as one store batch:
    1. parse document into sections
    2. extract code blocks per section (malformed sections are skipped)
    3. put each entry (ambiguous near-duplicates are held for review)
    4. commit the whole batch atomically
    """

    def __init__(self, store: SnippetStore, parser: Optional[DocumentParser] = None):
        """
        Initialize ingestion pipeline.

        Args:
            store: SnippetStore instance
            parser: Document parser (default: DocumentParser())
        """
        self.store = store
        self.parser = parser or DocumentParser()
        logger.info("SnippetIngestionPipeline initialized")

    def ingest_markdown(self, md_path: Path) -> IngestReport:
        """
        Ingest a Markdown file.

        Args:
            md_path: Path to Markdown file

        Returns:
            IngestReport
        """
        logger.info(f"Ingesting Markdown: {md_path}")

        with open(md_path, 'r', encoding='utf-8') as f:
            text = f.read()

        return self.ingest_document(text, source_uri=f"file://{Path(md_path).absolute()}")

    def ingest_document(self, text: str, source_uri: Optional[str] = None) -> IngestReport:
        """
        Ingest a Markdown document held in memory.

        Args:
            text: Markdown text
            source_uri: Where the text came from

        Returns:
            IngestReport
        """
        if not text.strip():
            logger.warning(f"No content in {source_uri or 'document'}")
            return IngestReport(source_uri=source_uri, content_hash=generate_text_hash(text))

        sections = self.parser.parse(text)
        report = self.ingest_sections(sections, source_uri=source_uri)
        report.content_hash = generate_text_hash(text)
        return report

    def ingest_sections(
        self,
        sections: Iterable[RawSection],
        source_uri: Optional[str] = None
    ) -> IngestReport:
        """
        Ingest parsed sections in one atomic batch.

        Args:
            sections: Sections from a DocumentParser
            source_uri: Where the sections came from

        Returns:
            IngestReport
        """
        report = IngestReport(source_uri=source_uri)

        with self.store.batch() as batch:
            for section in sections:
                try:
                    entry = Entry.from_markdown(
                        heading=section.heading,
                        markdown=section.body,
                        tags=section.tags,
                        source_links=section.source_links,
                    )
                except MalformedBlockError as e:
                    logger.warning(f"Skipping section '{section.heading}': {e}")
                    report.skipped.append(SkippedSection(section.heading, e))
                    continue

                self._put(batch, entry, report)

        self._log_report(report)
        return report

    def ingest_entries(
        self,
        entries: Iterable[Entry],
        source_uri: Optional[str] = None
    ) -> IngestReport:
        """
        Ingest entries built by an external parser, in one atomic batch.

        Args:
            entries: Entries (normalized on insert)
            source_uri: Where the entries came from

        Returns:
            IngestReport
        """
        report = IngestReport(source_uri=source_uri)

        with self.store.batch() as batch:
            for entry in entries:
                self._put(batch, entry, report)

        self._log_report(report)
        return report

    def _put(self, batch: StoreBatch, entry: Entry, report: IngestReport):
        try:
            report.results.append(batch.put(entry))
        except MergeConflictError as e:
            logger.warning(f"Held back '{entry.heading}' for review: {e}")
            report.conflicts.append(PendingConflict(entry, e))

    def _log_report(self, report: IngestReport):
        logger.info(
            f"Ingested {report.source_uri or 'batch'}: {len(report.results)} entries, "
            f"{len(report.skipped)} skipped, {len(report.conflicts)} conflicts"
        )
