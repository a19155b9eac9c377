"""Document parsing and ingestion."""

from .document_parser import DocumentParser, RawSection, slugify
from .pipeline import IngestReport, PendingConflict, SkippedSection, SnippetIngestionPipeline

__all__ = [
    "DocumentParser",
    "RawSection",
    "slugify",
    "IngestReport",
    "PendingConflict",
    "SkippedSection",
    "SnippetIngestionPipeline",
]
