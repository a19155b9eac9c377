"""Entry model representing one self-contained snippet."""

import json
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Tuple

from snipstore.errors import MalformedBlockError
from snipstore.models.fingerprint import (
    generate_fingerprint,
    normalize_code,
    normalize_heading,
    normalize_text,
)

VARIANT_TAG = "variant"

FENCE_PATTERN = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})(?P<info>.*)$")

_CLOSING_FENCE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})[ \t]*$")


def utcnow() -> datetime:
    """Naive UTC timestamp (the form DuckDB TIMESTAMP columns round-trip)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_tag(tag: str) -> str:
    """Lower-case a tag and collapse its whitespace."""
    return " ".join(tag.split()).lower()


def match_fence(line: str) -> Optional[re.Match]:
    """
    Match a line that opens a fenced code block.

    Backtick fences may not carry backticks in their info string.

    Returns:
        Match with ``fence`` and ``info`` groups, or None
    """
    match = FENCE_PATTERN.match(line)
    if match and match.group("fence")[0] == "`" and "`" in match.group("info"):
        return None
    return match


def closes_fence(line: str, fence: str) -> bool:
    """True if ``line`` closes a block opened with ``fence``."""
    match = _CLOSING_FENCE.match(line)
    if match is None:
        return False
    closing = match.group("fence")
    return closing[0] == fence[0] and len(closing) >= len(fence)


class CodeBlockSplit(NamedTuple):
    """Result of separating fenced code from prose."""

    prose: str
    code_blocks: Tuple[str, ...]
    languages: Tuple[str, ...]


def extract_code_blocks(markdown: str, heading: Optional[str] = None) -> CodeBlockSplit:
    """
    Separate fenced code blocks from the surrounding prose.

    A fence is three or more backticks or tildes, optionally followed by an
    info string whose first word is taken as the block language. A block is
    closed by a line of the same fence character at least as long as the
    opening fence, indented by at most three spaces.

    Args:
        markdown: Section body
        heading: Section heading, used only in error messages

    Returns:
        CodeBlockSplit with prose, code blocks (in order) and languages

    Raises:
        MalformedBlockError: If a fence is never closed
    """
    prose_lines: List[str] = []
    blocks: List[str] = []
    languages: List[str] = []

    fence: Optional[str] = None
    fence_line = 0
    current: List[str] = []

    text = markdown.replace("\r\n", "\n").replace("\r", "\n")
    for lineno, line in enumerate(text.split("\n"), start=1):
        if fence is None:
            match = match_fence(line)
            if match:
                fence = match.group("fence")
                fence_line = lineno
                current = []
                info = match.group("info").strip()
                if info:
                    language = info.split()[0].lower()
                    if language not in languages:
                        languages.append(language)
                continue
            prose_lines.append(line)
        else:
            if closes_fence(line, fence):
                blocks.append("\n".join(current))
                fence = None
                continue
            current.append(line)

    if fence is not None:
        raise MalformedBlockError(line=fence_line, heading=heading)

    return CodeBlockSplit(
        prose=normalize_text("\n".join(prose_lines)),
        code_blocks=tuple(blocks),
        languages=tuple(languages),
    )


def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return tuple(seen)


@dataclass(frozen=True)
class Entry:
    """
    A single documentation snippet.

    Entries are immutable; every change produces a new value. Equality only
    covers content, so bookkeeping fields assigned by the store do not make
    a stored entry differ from the one that was inserted.

    Attributes:
        id: Fingerprint of heading + normalized code blocks
        heading: Section heading
        body_text: Prose surrounding the code
        code_blocks: Fenced code blocks in document order
        tags: Lower-cased tags
        source_links: URLs referenced by the snippet, first-seen order
        ingested_at: When this version entered the store
        revision: 1-based position in the entry's revision chain
        previous_id: Id of the version this one superseded, if any
    """

    id: str
    heading: str
    body_text: str = ""
    code_blocks: Tuple[str, ...] = ()
    tags: FrozenSet[str] = frozenset()
    source_links: Tuple[str, ...] = ()
    ingested_at: Optional[datetime] = field(default=None, compare=False)
    revision: int = field(default=1, compare=False)
    previous_id: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        """Coerce collection fields into their immutable forms."""
        object.__setattr__(self, "code_blocks", tuple(self.code_blocks))
        object.__setattr__(
            self, "tags", frozenset(t for t in (normalize_tag(t) for t in self.tags) if t)
        )
        object.__setattr__(
            self, "source_links", _unique(link.strip() for link in self.source_links)
        )

    @classmethod
    def create(
        cls,
        heading: str,
        body_text: str = "",
        code_blocks: Iterable[str] = (),
        tags: Iterable[str] = (),
        source_links: Iterable[str] = (),
    ) -> "Entry":
        """
        Build a normalized entry and derive its id.

        Args:
            heading: Section heading
            body_text: Prose
            code_blocks: Code block texts
            tags: Tags
            source_links: Referenced URLs

        Returns:
            Normalized Entry
        """
        entry = cls(
            id="",
            heading=heading,
            body_text=body_text,
            code_blocks=tuple(code_blocks),
            tags=frozenset(tags),
            source_links=tuple(source_links),
        )
        return entry.normalize()

    @classmethod
    def from_markdown(
        cls,
        heading: str,
        markdown: str,
        tags: Iterable[str] = (),
        source_links: Iterable[str] = (),
    ) -> "Entry":
        """
        Build an entry from a Markdown section body.

        Fence languages are added to the tags.

        Raises:
            MalformedBlockError: If a code fence is unterminated
        """
        split = extract_code_blocks(markdown, heading=heading)
        return cls.create(
            heading=heading,
            body_text=split.prose,
            code_blocks=split.code_blocks,
            tags=list(tags) + list(split.languages),
            source_links=source_links,
        )

    def normalize(self) -> "Entry":
        """
        Return the canonical form of this entry with its id recomputed.

        Whitespace-only differences in heading or code do not change the id.
        Empty code blocks are dropped. Idempotent.
        """
        blocks = tuple(b for b in (normalize_code(block) for block in self.code_blocks) if b.strip())
        heading = normalize_heading(self.heading)
        return replace(
            self,
            id=generate_fingerprint(heading, blocks),
            heading=heading,
            body_text=normalize_text(self.body_text),
            code_blocks=blocks,
        )

    def with_metadata_from(self, other: "Entry") -> "Entry":
        """
        Merge metadata of an entry with the same code into this one.

        Tags and links are unioned (links keep this entry's order first);
        prose is only taken from ``other`` when this entry has none.
        """
        return replace(
            self,
            body_text=self.body_text or other.body_text,
            tags=self.tags | other.tags,
            source_links=self.source_links + other.source_links,
        )

    def with_tags(self, *tags: str) -> "Entry":
        """Return a copy with extra tags."""
        return replace(self, tags=self.tags | frozenset(tags))

    @property
    def code_blocks_json(self) -> str:
        """Serialize code blocks to JSON string."""
        return json.dumps(list(self.code_blocks))

    @property
    def tags_json(self) -> str:
        """Serialize tags to JSON string (sorted)."""
        return json.dumps(sorted(self.tags))

    @property
    def links_json(self) -> str:
        """Serialize source links to JSON string."""
        return json.dumps(list(self.source_links))

    @classmethod
    def from_json(
        cls,
        code_blocks_json: Optional[str] = None,
        tags_json: Optional[str] = None,
        links_json: Optional[str] = None,
        **kwargs
    ) -> "Entry":
        """
        Create an Entry from JSON fields.

        Args:
            code_blocks_json: JSON string for code blocks
            tags_json: JSON string for tags
            links_json: JSON string for source links
            **kwargs: Other Entry fields

        Returns:
            Entry instance
        """
        code_blocks = json.loads(code_blocks_json) if code_blocks_json else []
        tags = json.loads(tags_json) if tags_json else []
        links = json.loads(links_json) if links_json else []
        return cls(code_blocks=tuple(code_blocks), tags=frozenset(tags), source_links=tuple(links), **kwargs)

    @property
    def is_variant(self) -> bool:
        return VARIANT_TAG in self.tags

    @property
    def snippet_preview(self) -> str:
        """Short preview for result lists: first code lines, else prose."""
        source = self.code_blocks[0] if self.code_blocks else self.body_text
        preview = " ".join(source.split())
        return preview[:80] + "..." if len(preview) > 80 else preview

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "heading": self.heading,
            "body_text": self.body_text,
            "code_blocks": list(self.code_blocks),
            "tags": sorted(self.tags),
            "source_links": list(self.source_links),
            "ingested_at": self.ingested_at.isoformat() if self.ingested_at else None,
            "revision": self.revision,
            "previous_id": self.previous_id,
        }

    def __repr__(self) -> str:
        return f"Entry(id={self.id[:8]}..., heading='{self.heading}', rev={self.revision})"
