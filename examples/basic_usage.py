"""
Basic usage example for SnipStore.

This script demonstrates how to:
1. Initialize the library
2. Ingest Markdown notes
3. Search and browse the snippets
"""

from pathlib import Path

from snipstore import Disposition, SnippetLibrary

SAMPLE_NOTE = """# Swift

## Custom key mapping

Use CodingKeys when the JSON keys differ from your Codable property names.

```swift
struct User: Codable {
    var firstName: String

    enum CodingKeys: String, CodingKey {
        case firstName = "first_name"
    }
}
```

## Custom key mapping

Codable types can rename several keys at once.

```swift
struct User: Codable {
    var firstName: String
    var age: Int

    enum CodingKeys: String, CodingKey {
        case firstName = "first_name"
        case age
    }
}
```
"""


def main():
    # Initialize the library
    print("Initializing SnipStore library...")
    library = SnippetLibrary(storage_path="examples_snippets.duckdb")

    # Example 1: Ingest text held in memory
    print("\nIngesting sample note...")
    report = library.ingest_text(SAMPLE_NOTE, source_uri="memory://sample")
    for disposition in Disposition:
        count = report.count(disposition)
        if count:
            print(f"✓ {disposition.value}: {count}")

    # Example 2: Ingest a directory
    notes_dir = "./notes"
    if Path(notes_dir).exists():
        print(f"\nIngesting all notes from {notes_dir}...")
        reports = library.ingest_directory(notes_dir)
        print(f"✓ Ingested {len(reports)} files")

    # Example 3: Search
    print("\n" + "="*60)
    print("SEARCH EXAMPLES")
    print("="*60)

    for query in ["codable", "custom keys", "dictionary"]:
        print(f"\nQuery: '{query}'")
        results = library.search(query, top_k=3)

        if results:
            for i, result in enumerate(results, 1):
                print(f"\n  [{i}] {result['heading']} (score {result['score']})")
                print(f"      {result['snippet_preview']}")
        else:
            print("  No results found")

    # Example 4: Variants and near-duplicates
    print("\nVariants:")
    for entry in library.by_tag("variant"):
        print(f"  {entry}")

    for pair in library.find_near_duplicates():
        print(f"  {pair['heading']}: {pair['score']:.2f}")

    print(f"\nStats: {library.stats()}")
    library.close()


if __name__ == "__main__":
    main()
