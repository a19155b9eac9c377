"""Normalization and fingerprint utilities for snippet entries."""

import hashlib
import re
import textwrap
from typing import Iterable, List

_BLANK_RUN = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """
    Normalize a block of text into its canonical display form.

    Converts line endings to ``\\n``, strips trailing whitespace from each
    line, collapses repeated blank lines into one and strips the result.

    Args:
        text: Input text

    Returns:
        Normalized text
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    text = _BLANK_RUN.sub("\n\n", text)
    return text.strip()


def normalize_code(code: str) -> str:
    """
    Normalize a code block without disturbing its relative indentation.

    Same as :func:`normalize_text`, except only blank lines are stripped from
    the ends and the common leading indentation is removed.
    """
    code = code.replace("\r\n", "\n").replace("\r", "\n")
    code = "\n".join(line.rstrip() for line in code.split("\n"))
    code = _BLANK_RUN.sub("\n\n", code)
    return textwrap.dedent(code.strip("\n"))


def normalize_heading(heading: str) -> str:
    """Collapse whitespace in a heading and strip it."""
    return " ".join(heading.split())


def heading_key(heading: str) -> str:
    """
    Build the comparison key for a heading.

    Headings that differ only in case or spacing share a key.

    Examples:
        >>> heading_key("  Custom   key Mapping ")
        'custom key mapping'
    """
    return normalize_heading(heading).casefold()


def canonical_lines(code: str) -> List[str]:
    """
    Reduce a code block to its whitespace-insensitive lines.

    Each line has runs of whitespace collapsed to a single space and is
    stripped; blank lines are dropped.

    Args:
        code: Code block text

    Returns:
        List of canonical lines
    """
    lines = []
    for line in code.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        collapsed = " ".join(line.split())
        if collapsed:
            lines.append(collapsed)
    return lines


def canonical_code(code_blocks: Iterable[str]) -> str:
    """
    Join code blocks into the canonical form used for fingerprinting.

    Blocks are separated by a unit separator so that moving a line across a
    block boundary changes the result.
    """
    return "\x1e".join("\n".join(canonical_lines(block)) for block in code_blocks)


def generate_fingerprint(heading: str, code_blocks: Iterable[str]) -> str:
    """
    Generate the deterministic id of an entry.

    The id is a SHA256 hash of:
    - the heading key (case and whitespace insensitive)
    - the canonical code blocks

    Prose is not part of the hash, so two entries with the same
    code under the same heading but different commentary share an id.

    Args:
        heading: Entry heading
        code_blocks: Code blocks in document order

    Returns:
        SHA256 hash as hex string

    Example:
        >>> generate_fingerprint("Encoding", ["let data = try encoder.encode(user)"])
        '3f1c...'
    """
    components = f"{heading_key(heading)}\x1f{canonical_code(code_blocks)}"
    return hashlib.sha256(components.encode("utf-8")).hexdigest()


def generate_text_hash(text: str) -> str:
    """
    Generate a hash of text content (for document change detection).

    Args:
        text: Text to hash

    Returns:
        SHA256 hash as hex string
    """
    normalized = normalize_text(text)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
