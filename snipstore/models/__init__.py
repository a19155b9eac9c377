"""Data models for the snippet store."""

from .entry import (
    Entry,
    CodeBlockSplit,
    FENCE_PATTERN,
    VARIANT_TAG,
    closes_fence,
    extract_code_blocks,
    match_fence,
    normalize_tag,
    utcnow,
)
from .fingerprint import (
    generate_fingerprint,
    generate_text_hash,
    canonical_code,
    canonical_lines,
    heading_key,
    normalize_code,
    normalize_heading,
    normalize_text,
)

__all__ = [
    "Entry",
    "CodeBlockSplit",
    "FENCE_PATTERN",
    "VARIANT_TAG",
    "closes_fence",
    "extract_code_blocks",
    "match_fence",
    "normalize_tag",
    "utcnow",
    "generate_fingerprint",
    "generate_text_hash",
    "canonical_code",
    "canonical_lines",
    "heading_key",
    "normalize_code",
    "normalize_heading",
    "normalize_text",
]
