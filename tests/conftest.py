"""Pytest configuration and fixtures."""

import io
import json
import sqlite3
import tempfile
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import zstandard
from openpyxl import Workbook

ANKI_SCHEMA = """
-- Notes
CREATE TABLE notes (
    id INTEGER PRIMARY KEY,
    guid TEXT NOT NULL,
    mid INTEGER NOT NULL,
    mod INTEGER NOT NULL,
    usn INTEGER NOT NULL,
    tags TEXT NOT NULL,
    flds TEXT NOT NULL,
    sfld INTEGER NOT NULL,
    csum INTEGER NOT NULL,
    flags INTEGER NOT NULL,
    data TEXT NOT NULL
);

-- Cards
CREATE TABLE cards (
    id INTEGER PRIMARY KEY,
    nid INTEGER NOT NULL,
    did INTEGER NOT NULL,
    ord INTEGER NOT NULL,
    mod INTEGER NOT NULL,
    usn INTEGER NOT NULL,
    type INTEGER NOT NULL,
    queue INTEGER NOT NULL,
    due INTEGER NOT NULL,
    ivl INTEGER NOT NULL,
    factor INTEGER NOT NULL,
    reps INTEGER NOT NULL,
    lapses INTEGER NOT NULL,
    left INTEGER NOT NULL,
    odue INTEGER NOT NULL,
    odid INTEGER NOT NULL,
    flags INTEGER NOT NULL,
    data TEXT NOT NULL
);

-- Review log
CREATE TABLE revlog (
    id INTEGER PRIMARY KEY,
    cid INTEGER NOT NULL,
    usn INTEGER NOT NULL,
    ease INTEGER NOT NULL,
    ivl INTEGER NOT NULL,
    lastIvl INTEGER NOT NULL,
    factor INTEGER NOT NULL,
    time INTEGER NOT NULL,
    type INTEGER NOT NULL
);
"""

# (note id, fields)
SAMPLE_NOTES = [
    (
        500,
        [
            "<b>犬</b>",
            "dog",
            "いぬいぬ",
            "[sound:word123.mp3]",
            "<div>犬が好きです</div>",
            "いぬがすきです",
            "I like <i>dogs</i>",
            "[sound:sent500.mp3]",
            '<img src="dog.jpg">',
        ],
    ),
    (501, ["猫", "cat", "ねこ", "[sound:missing.mp3]", "", "", "", "", ""]),
    (502, ["鳥", "bird", "とり"]),
]

# (card id, note id, ord, due, ivl, factor, reps, lapses), in table row order
SAMPLE_CARDS = [
    (9001, 500, 0, 120, 10, 2500, 6, 1),
    (9002, 501, 0, 0, 0, 0, 0, 0),
    (9003, 500, 1, 150, 25, 2300, 4, 2),
    (9004, 502, 1, 90, 3, 2600, 2, 0),
]

# (id ms, card id, ease, ivl, lastIvl, factor, time ms, type)
SAMPLE_REVLOG = [
    (1700000000001, 9001, 3, 1, 0, 2500, 5000, 0),
    (1700000000002, 9001, 3, 4, 1, 2500, 3000, 1),
    (1700000000003, 9001, 1, 1, 4, 2300, 8000, 1),
    (1700000000004, 9003, 4, 7, 0, 2500, 2000, 0),
    (1700000000005, 9003, 3, 25, 7, 2300, 1500, 1),
    (1700000000006, 9004, 3, 3, 0, 2600, 4000, 0),
]

SAMPLE_MANIFEST = {
    "17": "word123.mp3",
    "18": "sent500.mp3",
    "19": "dog.jpg",
    "20": "missing.mp3",  # listed but not shipped in the zip
}

SAMPLE_MEDIA_ENTRIES = {
    "17": b"ID3-word-audio",
    "18": b"ID3-sentence-audio",
    "19": b"\xff\xd8\xff-jpeg",
}

CollectionFactory = Callable[..., bytes]
ApkgFactory = Callable[..., bytes]


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_collection(temp_dir: Path) -> CollectionFactory:
    """Factory building an Anki collection database and returning its bytes.

    Creates a SQLite database with the same notes/cards/revlog schema as
    Anki's collection.anki2.
    """
    counter = iter(range(1_000))

    def factory(
        notes: list[tuple[int, list[str]]] | None = None,
        cards: list[tuple[int, ...]] | None = None,
        revlog: list[tuple[int, ...]] | None = None,
    ) -> bytes:
        notes = SAMPLE_NOTES if notes is None else notes
        cards = SAMPLE_CARDS if cards is None else cards
        revlog = SAMPLE_REVLOG if revlog is None else revlog

        db_path = temp_dir / f"collection-{next(counter)}.anki2"
        conn = sqlite3.connect(str(db_path))
        conn.executescript(ANKI_SCHEMA)

        conn.executemany(
            "INSERT INTO notes (id, guid, mid, mod, usn, tags, flds, sfld, csum, flags, data) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (nid, f"guid{nid}", 1234567891, 1700000000, -1, "", "\x1f".join(fields), 0, 0, 0, "")
                for nid, fields in notes
            ],
        )
        conn.executemany(
            "INSERT INTO cards (id, nid, did, ord, mod, usn, type, queue, due, ivl, factor, reps, lapses, left, odue, odid, flags, data) VALUES (?, ?, 1, ?, 1700000000, -1, 2, 2, ?, ?, ?, ?, ?, 0, 0, 0, 0, '')",
            cards,
        )
        conn.executemany(
            "INSERT INTO revlog (id, cid, usn, ease, ivl, lastIvl, factor, time, type) VALUES (?, ?, -1, ?, ?, ?, ?, ?, ?)",
            revlog,
        )
        conn.commit()
        conn.close()

        return db_path.read_bytes()

    return factory


@pytest.fixture
def make_apkg() -> ApkgFactory:
    """Factory zipping a collection database and media into an .apkg."""

    def factory(
        database: bytes | None,
        *,
        manifest: dict[str, str] | None = None,
        media: dict[str, bytes] | None = None,
        database_entry: str = "collection.anki2",
        compression: str | None = None,
        extra_entries: dict[str, bytes] | None = None,
    ) -> bytes:
        manifest = SAMPLE_MANIFEST if manifest is None else manifest
        media = SAMPLE_MEDIA_ENTRIES if media is None else media

        manifest_bytes = json.dumps(manifest).encode("utf-8")
        if compression == "zstd":
            compressor = zstandard.ZstdCompressor()
            manifest_bytes = compressor.compress(manifest_bytes)
            if database is not None:
                database = compressor.compress(database)

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            if database is not None:
                zf.writestr(database_entry, database)
            zf.writestr("media", manifest_bytes)
            for entry, blob in media.items():
                zf.writestr(entry, blob)
            for entry, blob in (extra_entries or {}).items():
                zf.writestr(entry, blob)
        return buffer.getvalue()

    return factory


@pytest.fixture
def sample_collection(make_collection: CollectionFactory) -> bytes:
    """Collection database with three notes and four cards."""
    return make_collection()


@pytest.fixture
def sample_apkg(make_apkg: ApkgFactory, sample_collection: bytes, temp_dir: Path) -> Path:
    """Legacy-format .apkg (plain database and JSON manifest) on disk."""
    path = temp_dir / "deck.apkg"
    path.write_bytes(make_apkg(sample_collection))
    return path


@pytest.fixture
def sample_colpkg_zstd(make_apkg: ApkgFactory, sample_collection: bytes, temp_dir: Path) -> Path:
    """New-format package with zstd database and manifest plus a stub legacy db."""
    path = temp_dir / "collection.colpkg"
    path.write_bytes(
        make_apkg(
            sample_collection,
            database_entry="collection.anki21b",
            compression="zstd",
            extra_entries={"collection.anki2": b"stub: please update Anki"},
        )
    )
    return path


@pytest.fixture
def frequency_xlsx(temp_dir: Path) -> Path:
    """Workbook whose second sheet ranks 猫, 鳥, 魚, 犬 as 1-4."""
    path = temp_dir / "freq_list.xlsx"
    workbook = Workbook()
    info = workbook.active
    info.title = "Info"
    info.append(["source", "test corpus"])

    words = workbook.create_sheet("Words")
    words.append(["word"])
    for word in ["猫", "鳥", "魚", "犬"]:
        words.append([word])

    workbook.save(path)
    return path


@pytest.fixture
def malformed_xlsx(temp_dir: Path) -> Path:
    """A zip named .xlsx whose workbook part is not valid XML."""
    path = temp_dir / "malformed.xlsx"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(
            "[Content_Types].xml",
            '<?xml version="1.0"?>'
            '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types"/>',
        )
        zf.writestr("xl/workbook.xml", "<workbook><<<broken")
    return path
