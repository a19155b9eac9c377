"""DuckDB persistence for snippet records and revision chains."""

import logging
from typing import Dict, Iterable, List, Tuple

import duckdb

from snipstore.models import Entry, canonical_code

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_RECORD_COLUMNS = """
    lineage, revision, id, is_current, heading, body_text, code_blocks_json,
    canonical_code, tags_json, links_json, ingested_at, previous_id
"""


class DuckDBBackend:
    """
    Store snippet records in DuckDB.

    Every version of an entry is one row. Rows are grouped by ``lineage``,
    the id of the lineage's current entry, and ordered by ``revision``.
    Superseded ids are kept in a separate alias table.
    """

    def __init__(self, db_path: str = "snippets.duckdb"):
        """
        Initialize DuckDB connection and create schema.

        Args:
            db_path: Path to the DuckDB database file (":memory:" for none)
        """
        self.db_path = db_path
        self.conn = duckdb.connect(db_path)
        self._create_schema()
        logger.info(f"DuckDB backend initialized at {db_path}")

    def _create_schema(self):
        """Create tables and indices."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS snippet_records (
                lineage VARCHAR NOT NULL,
                revision INTEGER NOT NULL,
                id VARCHAR NOT NULL,
                is_current BOOLEAN NOT NULL,
                heading VARCHAR NOT NULL,
                body_text VARCHAR,
                code_blocks_json VARCHAR NOT NULL,
                canonical_code VARCHAR NOT NULL,
                tags_json VARCHAR,
                links_json VARCHAR,
                ingested_at TIMESTAMP,
                previous_id VARCHAR
            )
        """)

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS snippet_aliases (
                superseded_id VARCHAR NOT NULL,
                current_id VARCHAR NOT NULL
            )
        """)

        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_records_lineage ON snippet_records(lineage)"
        )
        self.conn.commit()

    def load(self) -> Tuple[Dict[str, Entry], Dict[str, List[Entry]], Dict[str, str]]:
        """
        Read the full store state.

        Returns:
            Tuple of (current entries by id, prior revisions by lineage
            oldest first, aliases from superseded id to current id)
        """
        rows = self.conn.execute(f"""
            SELECT {_RECORD_COLUMNS}
            FROM snippet_records
            ORDER BY lineage, revision
        """).fetchall()

        entries: Dict[str, Entry] = {}
        revisions: Dict[str, List[Entry]] = {}

        for row in rows:
            lineage, revision, entry_id, is_current = row[0], row[1], row[2], row[3]
            entry = Entry.from_json(
                code_blocks_json=row[6],
                tags_json=row[8],
                links_json=row[9],
                id=entry_id,
                heading=row[4],
                body_text=row[5] or "",
                ingested_at=row[10],
                revision=revision,
                previous_id=row[11],
            )
            if is_current:
                entries[lineage] = entry
            else:
                revisions.setdefault(lineage, []).append(entry)

        aliases = dict(self.conn.execute(
            "SELECT superseded_id, current_id FROM snippet_aliases"
        ).fetchall())

        logger.info(f"Loaded {len(entries)} entries, {len(aliases)} aliases from {self.db_path}")
        return entries, revisions, aliases

    def write(
        self,
        lineages: Dict[str, List[Entry]],
        removed: Iterable[str],
        aliases: Dict[str, str]
    ):
        """
        Apply one batch of changes in a single transaction.

        Args:
            lineages: Full chain (prior revisions, then current entry) of
                      every lineage that changed, keyed by current id
            removed: Lineages whose current entry was superseded
            aliases: New or re-pointed aliases

        Raises:
            duckdb.Error: If the transaction fails (it is rolled back)
        """
        self.conn.begin()
        try:
            for lineage in removed:
                self.conn.execute("DELETE FROM snippet_records WHERE lineage = ?", [lineage])

            for lineage, chain in lineages.items():
                self.conn.execute("DELETE FROM snippet_records WHERE lineage = ?", [lineage])
                for position, entry in enumerate(chain, start=1):
                    self._insert_record(lineage, position, entry, is_current=position == len(chain))

            for superseded_id, current_id in aliases.items():
                self.conn.execute(
                    "DELETE FROM snippet_aliases WHERE superseded_id = ?", [superseded_id]
                )
                self.conn.execute(
                    "INSERT INTO snippet_aliases (superseded_id, current_id) VALUES (?, ?)",
                    [superseded_id, current_id]
                )

            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def _insert_record(self, lineage: str, revision: int, entry: Entry, is_current: bool):
        self.conn.execute(f"""
            INSERT INTO snippet_records ({_RECORD_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            lineage,
            revision,
            entry.id,
            is_current,
            entry.heading,
            entry.body_text,
            entry.code_blocks_json,
            canonical_code(entry.code_blocks),
            entry.tags_json,
            entry.links_json,
            entry.ingested_at,
            entry.previous_id,
        ])

    def count_records(self) -> int:
        """
        Get the total number of stored versions.

        Returns:
            Number of rows in snippet_records
        """
        result = self.conn.execute("SELECT COUNT(*) FROM snippet_records").fetchone()
        return result[0] if result else 0

    def close(self):
        """Close the database connection."""
        self.conn.close()
        logger.info("DuckDB connection closed")
