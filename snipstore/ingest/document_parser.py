"""Split Markdown notes into heading-delimited sections."""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from snipstore.models import closes_fence, match_fence

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_HEADING = re.compile(r"^(?P<marks>#{1,6})\s+(?P<title>.+?)(?:\s+#+)?\s*$")
_TAGS_LINE = re.compile(r"^\s*tags?\s*:\s*(?P<tags>.+)$", re.IGNORECASE)
_MARKDOWN_LINK = re.compile(r"\[[^\]]*\]\((?P<url>https?://[^)\s]+)\)")
_BARE_URL = re.compile(r"https?://[^\s)>\]]+")


def slugify(text: str) -> str:
    """
    Turn a heading into a tag.

    Examples:
        >>> slugify("Swift: Codable Notes")
        'swift-codable-notes'
    """
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


@dataclass
class RawSection:
    """
    A heading and the Markdown body beneath it, before code extraction.

    Attributes:
        heading: Heading text without the ``#`` marks
        level: Heading level (1-6)
        body: Markdown body (fences intact, ``Tags:`` lines removed)
        parent: Nearest level-1 heading above this one, if any
        tags: Tags from the parent heading and ``Tags:`` lines
        source_links: URLs found in the prose, first-seen order
        start_line: 1-based line number of the heading in the document
    """

    heading: str
    level: int
    body: str
    parent: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    source_links: List[str] = field(default_factory=list)
    start_line: int = 0


class DocumentParser:
    """
    Parse a Markdown note into sections.

    Headings are only recognized outside code fences, so a fence that is
    never closed swallows the rest of the document into its section; that
    section then fails code extraction on its own.
    """

    def __init__(self, max_heading_level: int = 6):
        """
        Initialize parser.

        Args:
            max_heading_level: Deepest heading level that starts a section
                               (deeper headings stay in the body)
        """
        if not 1 <= max_heading_level <= 6:
            raise ValueError(f"max_heading_level must be between 1 and 6, got {max_heading_level}")
        self.max_heading_level = max_heading_level

    def parse(self, text: str) -> List[RawSection]:
        """
        Split a document into sections.

        Content before the first heading and sections with an empty body
        are dropped.

        Args:
            text: Markdown document

        Returns:
            List of RawSections in document order
        """
        sections: List[RawSection] = []
        current: Optional[RawSection] = None
        body_lines: List[str] = []
        parent: Optional[str] = None
        fence: Optional[str] = None

        lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        for lineno, line in enumerate(lines, start=1):
            if fence is not None:
                if closes_fence(line, fence):
                    fence = None
                body_lines.append(line)
                continue

            fence_match = match_fence(line)
            if fence_match:
                fence = fence_match.group("fence")
                body_lines.append(line)
                continue

            heading_match = _HEADING.match(line)
            if heading_match and len(heading_match.group("marks")) <= self.max_heading_level:
                self._close(current, body_lines, sections)
                level = len(heading_match.group("marks"))
                title = heading_match.group("title")
                if level == 1:
                    parent = title
                current = RawSection(
                    heading=title,
                    level=level,
                    body="",
                    parent=parent if level > 1 else None,
                    start_line=lineno,
                )
                body_lines = []
                continue

            tags_match = _TAGS_LINE.match(line)
            if tags_match and current is not None:
                current.tags.extend(t.strip() for t in tags_match.group("tags").split(","))
                continue

            if current is not None:
                current.source_links.extend(self._links(line))
            body_lines.append(line)

        self._close(current, body_lines, sections)

        logger.info(f"Parsed {len(sections)} sections")
        return sections

    def _close(self, section: Optional[RawSection], body_lines: List[str], sections: List[RawSection]):
        """Finish a section and keep it if it has content."""
        if section is None:
            return
        section.body = "\n".join(body_lines).strip("\n")
        if not section.body.strip():
            return
        if section.parent:
            section.tags.insert(0, slugify(section.parent))
        sections.append(section)

    @staticmethod
    def _links(line: str) -> List[str]:
        """URLs referenced on a prose line."""
        links = [m.group("url") for m in _MARKDOWN_LINK.finditer(line)]
        for match in _BARE_URL.finditer(line):
            url = match.group(0).rstrip(".,;:")
            if url not in links:
                links.append(url)
        return links
