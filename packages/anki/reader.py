"""Anki collection SQLite reader."""

import sqlite3
import tempfile
from pathlib import Path
from typing import Any

from packages.anki.models import AnkiCard, AnkiNote, AnkiRevlogEntry, AnkiTables
from packages.common.exceptions import ArchiveFormatError, MissingTableError
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

FIELD_SEPARATOR = "\x1f"


class AnkiReader:
    """Read notes, cards and revlog from an extracted collection database.

    sqlite3 cannot open a database from memory, so the bytes are written to
    a temp file that lives as long as the reader is open.
    """

    def __init__(self, database: bytes) -> None:
        """Initialize reader with the decompressed collection database."""
        if not database:
            raise ArchiveFormatError("Collection database is empty")
        self.database = database

        self._temp_path: Path | None = None
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> "AnkiReader":
        """Write database to temp and open connection."""
        with tempfile.NamedTemporaryFile(suffix=".anki2", delete=False) as handle:
            handle.write(self.database)
            self._temp_path = Path(handle.name)

        try:
            self._conn = sqlite3.connect(str(self._temp_path))
            self._conn.row_factory = sqlite3.Row
            # Fail early on data that is not an SQLite file
            self._conn.execute("SELECT name FROM sqlite_master LIMIT 1").fetchall()
        except sqlite3.DatabaseError as exc:
            self._close()
            raise ArchiveFormatError(f"Collection database is unreadable: {exc}") from exc
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Close connection and remove temp file."""
        self._close()

    def _close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
        if self._temp_path and self._temp_path.exists():
            self._temp_path.unlink()
            self._temp_path = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure we have an open connection."""
        if self._conn is None:
            raise RuntimeError("Reader not opened. Use 'with AnkiReader(...) as reader:'")
        return self._conn

    def _query(self, table: str, sql: str) -> list[sqlite3.Row]:
        conn = self._ensure_connected()
        try:
            return conn.execute(sql).fetchall()
        except sqlite3.OperationalError as exc:
            raise MissingTableError(
                f"Could not query the {table} table: {exc}",
                context={"table": table},
            ) from exc

    def read_notes(self) -> list[AnkiNote]:
        """Read notes from collection."""
        rows = self._query("notes", "SELECT id, flds FROM notes")
        return [
            AnkiNote(note_id=row["id"], fields=row["flds"].split(FIELD_SEPARATOR))
            for row in rows
        ]

    def read_cards(self) -> list[AnkiCard]:
        """Read cards from collection, in table row order."""
        rows = self._query(
            "cards",
            """
            SELECT id, nid, ord, due, ivl, factor, reps, lapses
            FROM cards
            """,
        )

        result: list[AnkiCard] = []
        for row in rows:
            result.append(
                AnkiCard(
                    card_id=row["id"],
                    note_id=row["nid"],
                    ord=row["ord"],
                    due=row["due"],
                    ivl=row["ivl"] or 0,
                    factor=row["factor"] or 0,
                    reps=row["reps"] or 0,
                    lapses=row["lapses"] or 0,
                )
            )

        return result

    def read_revlog(self) -> list[AnkiRevlogEntry]:
        """Read review log entries."""
        rows = self._query(
            "revlog",
            """
            SELECT id, cid, ease, ivl, lastIvl, factor, time, type
            FROM revlog
            """,
        )

        result: list[AnkiRevlogEntry] = []
        for row in rows:
            result.append(
                AnkiRevlogEntry(
                    id=row["id"],
                    card_id=row["cid"],
                    ease=row["ease"],
                    ivl=row["ivl"],
                    last_ivl=row["lastIvl"],
                    factor=row["factor"],
                    time_ms=row["time"],
                    type=row["type"],
                )
            )

        return result

    def read_tables(self, *, allow_empty_revlog: bool = False) -> AnkiTables:
        """Read all three tables the merger needs.

        Args:
            allow_empty_revlog: Accept a deck that has never been studied.

        Raises:
            MissingTableError: If notes, cards or revlog is missing or empty.
        """
        tables = AnkiTables(
            notes=self.read_notes(),
            cards=self.read_cards(),
            revlog=self.read_revlog(),
        )

        empty = [
            name
            for name, rows in (
                ("notes", tables.notes),
                ("cards", tables.cards),
                ("revlog", tables.revlog),
            )
            if not rows and not (name == "revlog" and allow_empty_revlog)
        ]
        if empty:
            raise MissingTableError(
                "No data found in the notes, cards, or revlog table.",
                context={"empty_tables": empty},
            )

        logger.info(
            "tables_read",
            notes=len(tables.notes),
            cards=len(tables.cards),
            revlog=len(tables.revlog),
        )
        return tables


def read_anki_tables(database: bytes, *, allow_empty_revlog: bool = False) -> AnkiTables:
    """Convenience function to read notes, cards and revlog.

    Args:
        database: Decompressed collection database bytes.
        allow_empty_revlog: Accept a deck without review history.

    Returns:
        AnkiTables with all three result sets.
    """
    with AnkiReader(database) as reader:
        return reader.read_tables(allow_empty_revlog=allow_empty_revlog)
