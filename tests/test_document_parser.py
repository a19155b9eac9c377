"""Test splitting Markdown notes into sections."""

import pytest

from snipstore.errors import MalformedBlockError
from snipstore.ingest import DocumentParser, slugify
from snipstore.models import Entry

NOTE = """Intro text before any heading.

# Swift Notes

## Custom key mapping

Tags: json, Codable

See [Encoding and Decoding](https://developer.apple.com/documentation/foundation/archives_and_serialization)
and https://swift.org.

```swift
# not a heading
struct User: Codable {
    var firstName: String
}
```

## Empty section

## Decoding dates

```swift
decoder.dateDecodingStrategy = .iso8601
```
"""


@pytest.fixture
def parser():
    return DocumentParser()


def test_slugify():
    assert slugify("Swift: Codable Notes") == "swift-codable-notes"
    assert slugify("  C++ / Tips  ") == "c-tips"


def test_sections_in_order(parser):
    sections = parser.parse(NOTE)

    assert [s.heading for s in sections] == ["Custom key mapping", "Decoding dates"]
    assert [s.level for s in sections] == [2, 2]
    assert sections[0].start_line == 5


def test_heading_inside_fence_is_code(parser):
    section = parser.parse(NOTE)[0]

    assert "# not a heading" in section.body


def test_tags_line_and_parent_slug(parser):
    section = parser.parse(NOTE)[0]

    assert section.parent == "Swift Notes"
    assert section.tags == ["swift-notes", "json", "Codable"]
    assert "Tags:" not in section.body


def test_links_collected(parser):
    section = parser.parse(NOTE)[0]

    assert section.source_links == [
        "https://developer.apple.com/documentation/foundation/archives_and_serialization",
        "https://swift.org",
    ]


def test_max_heading_level():
    parser = DocumentParser(max_heading_level=2)
    text = "## Outer\n\nprose\n\n### Inner\n\nmore prose\n"

    sections = parser.parse(text)

    assert len(sections) == 1
    assert "### Inner" in sections[0].body


def test_invalid_max_heading_level():
    with pytest.raises(ValueError):
        DocumentParser(max_heading_level=7)


def test_crlf_input(parser):
    sections = parser.parse(NOTE.replace("\n", "\r\n"))

    assert [s.heading for s in sections] == ["Custom key mapping", "Decoding dates"]


def test_unterminated_fence_swallows_rest(parser):
    text = "## Broken\n\n```python\nprint(1)\n\n## Next\n\ntext\n"

    sections = parser.parse(text)

    assert [s.heading for s in sections] == ["Broken"]
    with pytest.raises(MalformedBlockError) as exc_info:
        Entry.from_markdown(sections[0].heading, sections[0].body)
    assert exc_info.value.line == 1
    assert exc_info.value.heading == "Broken"


def test_closing_hashes_need_a_space():
    text = "## Using C#\n\nbody\n\n## Enums in F# ##\n\nmore\n\n## Closed ###\n\nlast\n"

    sections = DocumentParser().parse(text)

    assert [s.heading for s in sections] == ["Using C#", "Enums in F#", "Closed"]


def test_backtick_info_string_is_not_a_fence(parser):
    """A line the code extractor treats as prose must not hide later headings."""
    text = "## A\n\n```js`x\ncode\n\n## B\n\ntext about B\n"

    sections = parser.parse(text)

    assert [s.heading for s in sections] == ["A", "B"]
    entry = Entry.from_markdown(sections[0].heading, sections[0].body)
    assert entry.code_blocks == ()


def test_deeply_indented_fence_does_not_close_block(parser):
    text = "## Nested sample\n\n````markdown\n## Inside\n    ````\nstill code\n````\n\n## After\n\ntext\n"

    sections = parser.parse(text)

    assert [s.heading for s in sections] == ["Nested sample", "After"]
    entry = Entry.from_markdown(sections[0].heading, sections[0].body)
    assert entry.code_blocks == ("## Inside\n    ````\nstill code",)


def test_sections_become_entries(parser):
    section = parser.parse(NOTE)[0]

    entry = Entry.from_markdown(section.heading, section.body, section.tags, section.source_links)

    assert entry.tags == frozenset({"swift-notes", "json", "codable", "swift"})
    assert len(entry.code_blocks) == 1
    assert entry.body_text.startswith("See [Encoding and Decoding]")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
