"""Test the Entry model and code block extraction."""

import pytest

from snipstore.errors import MalformedBlockError
from snipstore.models import Entry, closes_fence, extract_code_blocks, match_fence

SECTION = """Use a `CodingKeys` enum to rename fields.

```swift
struct User: Codable {
    var firstName: String
}
```

Decoding works the same way:

~~~Swift
let user = try JSONDecoder().decode(User.self, from: data)
~~~
"""


def test_extract_code_blocks_separates_prose():
    split = extract_code_blocks(SECTION)

    assert len(split.code_blocks) == 2
    assert split.code_blocks[0].startswith("struct User: Codable {")
    assert "JSONDecoder" in split.code_blocks[1]
    assert "```" not in split.prose
    assert "struct User" not in split.prose
    assert split.prose.startswith("Use a `CodingKeys` enum")
    assert "Decoding works the same way:" in split.prose
    assert split.languages == ("swift",)


def test_extract_code_blocks_longer_closing_fence():
    split = extract_code_blocks("````\nlet a = 1\n```\nstill code\n`````\nprose")

    assert split.code_blocks == ("let a = 1\n```\nstill code",)
    assert split.prose == "prose"


def test_closing_fence_indent_limit():
    split = extract_code_blocks("```\nlet a = 1\n    ```\nlet b = 2\n   ```  \nprose")

    assert split.code_blocks == ("let a = 1\n    ```\nlet b = 2",)
    assert split.prose == "prose"


def test_match_fence_and_closes_fence():
    assert match_fence("```swift").group("info") == "swift"
    assert match_fence("   ~~~") is not None
    assert match_fence("```js`x") is None
    assert match_fence("    ```") is None

    assert closes_fence("````", "```")
    assert not closes_fence("``", "```")
    assert not closes_fence("~~~", "```")
    assert not closes_fence("``` swift", "```")
    assert not closes_fence("    ```", "```")


def test_inline_backticks_are_not_fences():
    split = extract_code_blocks("Call ```foo``` inline.\nMore prose.")

    assert split.code_blocks == ()
    assert "inline" in split.prose


def test_unterminated_fence_raises():
    with pytest.raises(MalformedBlockError) as exc_info:
        extract_code_blocks("Intro\n\n```swift\nlet a = 1\n", heading="Broken")

    assert exc_info.value.line == 3
    assert exc_info.value.heading == "Broken"
    assert "Broken" in str(exc_info.value)


def test_tilde_fence_not_closed_by_backticks():
    with pytest.raises(MalformedBlockError):
        extract_code_blocks("~~~\nlet a = 1\n```\n")


def test_from_markdown_builds_normalized_entry():
    entry = Entry.from_markdown(
        heading="  Custom key   mapping ",
        markdown=SECTION,
        tags=["JSON", " Codable "],
        source_links=["https://developer.apple.com/documentation/swift/codable"],
    )

    assert entry.heading == "Custom key mapping"
    assert entry.tags == frozenset({"json", "codable", "swift"})
    assert entry.source_links == ("https://developer.apple.com/documentation/swift/codable",)
    assert entry.id == Entry.create(entry.heading, "", entry.code_blocks).id


def test_create_drops_empty_blocks_and_duplicate_links():
    entry = Entry.create(
        "Links",
        code_blocks=["   \n\n", "print(1)"],
        source_links=["https://a.example", " https://a.example ", "https://b.example"],
    )

    assert entry.code_blocks == ("print(1)",)
    assert entry.source_links == ("https://a.example", "https://b.example")


def test_equality_ignores_bookkeeping():
    from dataclasses import replace
    from datetime import datetime

    entry = Entry.create("Heading", "Prose", ["let a = 1"])
    stamped = replace(entry, ingested_at=datetime(2024, 1, 1), revision=3, previous_id="abc")

    assert entry == stamped


def test_with_metadata_from_unions_tags_and_links():
    first = Entry.create("H", "", ["let a = 1"], tags=["swift"], source_links=["https://a.example"])
    second = Entry.create("H", "Now with prose.", ["let a = 1"], tags=["json"], source_links=["https://b.example"])

    merged = first.with_metadata_from(second)

    assert merged.id == first.id
    assert merged.tags == frozenset({"swift", "json"})
    assert merged.source_links == ("https://a.example", "https://b.example")
    assert merged.body_text == "Now with prose."


def test_json_round_trip():
    entry = Entry.create("H", "Prose", ["let a = 1", "let b = 2"], tags=["x"], source_links=["https://a.example"])

    restored = Entry.from_json(
        code_blocks_json=entry.code_blocks_json,
        tags_json=entry.tags_json,
        links_json=entry.links_json,
        id=entry.id,
        heading=entry.heading,
        body_text=entry.body_text,
    )

    assert restored == entry


def test_snippet_preview_prefers_code():
    entry = Entry.create("H", "Prose here", ["let value = " + "x" * 200])

    assert entry.snippet_preview.startswith("let value =")
    assert entry.snippet_preview.endswith("...")
    assert Entry.create("H", "Only prose").snippet_preview == "Only prose"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
