"""Local card store backed by SQLite."""

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any

from packages.common.exceptions import NotFoundError, PersistenceError
from packages.common.logging import get_logger
from packages.importer.models import APP_FIELDS, CardRecord, CardStatsUpdate

logger = get_logger(module=__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS cards (
    nid INTEGER PRIMARY KEY,
    original_index INTEGER NOT NULL,
    rank INTEGER,
    due INTEGER,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_cards_original_index ON cards (original_index);
CREATE INDEX IF NOT EXISTS idx_cards_rank ON cards (rank);
CREATE INDEX IF NOT EXISTS idx_cards_due ON cards (due);

CREATE TABLE IF NOT EXISTS media (
    filename TEXT PRIMARY KEY,
    data BLOB NOT NULL
);

CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class SqliteCardStore:
    """Cards keyed by nid, plus media blobs and import metadata.

    sqlite3 calls run in a worker thread so the importer's event loop is
    free between batches. Callers must not run two imports on one store
    at the same time.
    """

    embed_media = False

    def __init__(self, path: str | Path) -> None:
        """Open (and create if needed) the store at ``path``."""
        self.path = Path(path)
        self._conn: sqlite3.Connection | None = None

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.executescript(SCHEMA)
            self._conn = conn
        return self._conn

    async def _run(self, operation: str, func: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Local store {operation} failed: {exc}",
                context={"path": str(self.path), "operation": operation},
            ) from exc

    # Cards

    def _save_cards(self, cards: list[CardRecord]) -> None:
        conn = self._connect()
        with conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO cards (nid, original_index, rank, due, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (card.nid, card.original_index, card.rank, card.due, card.model_dump_json())
                    for card in cards
                ],
            )

    async def save_cards(self, cards: list[CardRecord]) -> None:
        """Write one batch in a single transaction."""
        await self._run("save_cards", self._save_cards, cards)
        logger.debug("cards_saved", count=len(cards), path=str(self.path))

    def _get_card(self, nid: int) -> CardRecord | None:
        row = self._connect().execute("SELECT data FROM cards WHERE nid = ?", (nid,)).fetchone()
        if row is None:
            return None
        return CardRecord.model_validate_json(row["data"])

    async def get_card(self, nid: int) -> CardRecord | None:
        """Return the stored card for ``nid``, if any."""
        result: CardRecord | None = await self._run("get_card", self._get_card, nid)
        return result

    def _list_cards(self) -> list[CardRecord]:
        rows = self._connect().execute("SELECT data FROM cards ORDER BY original_index").fetchall()
        return [CardRecord.model_validate_json(row["data"]) for row in rows]

    async def list_cards(self) -> list[CardRecord]:
        """Return every stored card in original deck order."""
        result: list[CardRecord] = await self._run("list_cards", self._list_cards)
        return result

    def _list_note_index(self) -> dict[int, int]:
        rows = self._connect().execute("SELECT nid FROM cards").fetchall()
        return {row["nid"]: row["nid"] for row in rows}

    async def list_note_index(self) -> dict[int, int]:
        """Local records are keyed by nid, so the record ID is the nid."""
        result: dict[int, int] = await self._run("list_note_index", self._list_note_index)
        return result

    def _update_card_stats(self, record_id: int, update: CardStatsUpdate) -> None:
        conn = self._connect()
        with conn:
            row = conn.execute("SELECT data FROM cards WHERE nid = ?", (record_id,)).fetchone()
            if row is None:
                raise NotFoundError(f"Card not found: {record_id}", context={"nid": record_id})

            stored = json.loads(row["data"])
            preserved = {key: stored[key] for key in APP_FIELDS if key in stored}
            stored.update(update.as_payload())
            stored.update(preserved)
            card = CardRecord.model_validate(stored)

            conn.execute(
                "UPDATE cards SET due = ?, data = ? WHERE nid = ?",
                (card.due, card.model_dump_json(), record_id),
            )

    async def update_card_stats(self, record_id: int, update: CardStatsUpdate) -> None:
        """Merge scheduling state into the stored card, keeping app fields."""
        await self._run("update_card_stats", self._update_card_stats, record_id, update)

    # Media

    def _save_media(self, media: dict[str, bytes]) -> None:
        conn = self._connect()
        with conn:
            conn.executemany(
                "INSERT OR REPLACE INTO media (filename, data) VALUES (?, ?)",
                list(media.items()),
            )

    async def save_media(self, media: dict[str, bytes]) -> None:
        """Store media blobs as-is."""
        await self._run("save_media", self._save_media, media)
        logger.debug("media_saved", count=len(media), path=str(self.path))

    def _get_media(self, filename: str) -> bytes | None:
        row = self._connect().execute(
            "SELECT data FROM media WHERE filename = ?", (filename,)
        ).fetchone()
        return bytes(row["data"]) if row is not None else None

    async def get_media(self, filename: str) -> bytes | None:
        """Return the stored blob for ``filename``, if any."""
        result: bytes | None = await self._run("get_media", self._get_media, filename)
        return result

    # Metadata

    def _get_metadata(self) -> dict[str, Any]:
        rows = self._connect().execute("SELECT key, value FROM metadata").fetchall()
        return {row["key"]: json.loads(row["value"]) for row in rows}

    async def get_metadata(self) -> dict[str, Any]:
        result: dict[str, Any] = await self._run("get_metadata", self._get_metadata)
        return result

    def _set_metadata(self, values: dict[str, Any]) -> None:
        conn = self._connect()
        with conn:
            conn.executemany(
                """
                INSERT INTO metadata (key, value) VALUES (?, ?)
                ON CONFLICT (key) DO UPDATE SET value = excluded.value
                """,
                [(key, json.dumps(value)) for key, value in values.items()],
            )

    async def set_metadata(self, values: dict[str, Any]) -> None:
        await self._run("set_metadata", self._set_metadata, values)

    async def close(self) -> None:
        """Close the SQLite connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
