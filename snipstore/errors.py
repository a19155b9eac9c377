"""Exceptions raised by the snippet store."""

from typing import Optional


class SnipStoreError(Exception):
    """Base class for all snippet store errors."""


class MalformedBlockError(SnipStoreError):
    """
    A fenced code block was opened but never closed.

    Attributes:
        heading: Heading of the section containing the block (if known)
        line: 1-based line number of the opening fence within the section body
    """

    def __init__(self, line: int, heading: Optional[str] = None):
        self.line = line
        self.heading = heading
        where = f" in section '{heading}'" if heading else ""
        super().__init__(f"Unterminated code fence opened at line {line}{where}")


class NotFoundError(SnipStoreError, KeyError):
    """No entry (current or superseded) exists for the given id."""

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(entry_id)

    def __str__(self) -> str:
        return f"Entry not found: {self.entry_id}"


class MergeConflictError(SnipStoreError):
    """
    Two entries share a heading but their code similarity is too close to
    the auto-merge threshold to decide automatically.

    Also raised when two different code bodies hash to the same fingerprint.
    """

    def __init__(self, existing_id: str, incoming_id: str, score: float):
        self.existing_id = existing_id
        self.incoming_id = incoming_id
        self.score = score
        super().__init__(
            f"Manual resolution required: {incoming_id[:12]} vs {existing_id[:12]} "
            f"(similarity={score:.3f})"
        )
