"""Open Anki .apkg/.colpkg archives."""

import io
import json
import re
import zipfile
from collections.abc import Callable
from pathlib import Path

import httpx

from packages.anki.compression import decompress, decompress_zstd, is_zstd_compressed
from packages.anki.models import DeckArchive
from packages.common.exceptions import ArchiveFormatError, DecompressionError
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

MEDIA_MANIFEST_ENTRY = "media"
DATABASE_ENTRY_PATTERN = re.compile(r"collection\.anki2.*")

# Newer exports ship a stub collection.anki2 next to the real database
DATABASE_PREFERENCE = ("collection.anki21b", "collection.anki21", "collection.anki2")

ArchiveSource = bytes | bytearray | str | Path


async def load_archive_bytes(
    source: ArchiveSource,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 60.0,
) -> bytes:
    """Read archive bytes from a buffer, a local path, or an HTTP(S) URL."""
    if isinstance(source, bytes | bytearray):
        return bytes(source)

    if isinstance(source, str) and source.startswith(("http://", "https://")):
        logger.info("archive_fetch_started", url=source)
        if client is not None:
            response = await client.get(source)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
                response = await owned.get(source)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ArchiveFormatError(
                f"Could not download deck: HTTP {response.status_code}",
                context={"url": source},
            ) from exc
        return response.content

    path = Path(source).expanduser()
    if not path.exists():
        raise ArchiveFormatError(f"Deck file not found: {path}", context={"path": str(path)})
    return path.read_bytes()


def find_database_entry(names: list[str]) -> str | None:
    """Pick the collection database entry, preferring the newest format."""
    candidates = [name for name in names if DATABASE_ENTRY_PATTERN.fullmatch(name)]
    if not candidates:
        return None
    for preferred in DATABASE_PREFERENCE:
        if preferred in candidates:
            return preferred
    return candidates[0]


def parse_media_manifest(raw: bytes) -> dict[str, str]:
    """Parse the ``media`` manifest into ``{zip entry: real filename}``.

    Old exports store plain JSON; newer ones compress it. Anything that
    still is not JSON after decompression is skipped with a warning, since
    the cards themselves do not depend on media.
    """
    try:
        manifest = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        try:
            manifest = json.loads(decompress(raw).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("media_manifest_unreadable", error=str(exc))
            return {}

    if not isinstance(manifest, dict):
        logger.warning("media_manifest_unreadable", error="manifest is not an object")
        return {}

    return {str(key): str(value) for key, value in manifest.items()}


def _read_media_blob(zf: zipfile.ZipFile, entry: str) -> bytes:
    blob = zf.read(entry)
    if is_zstd_compressed(blob):
        try:
            return decompress_zstd(blob)
        except DecompressionError as exc:
            logger.warning("media_decompression_failed", entry=entry, error=str(exc))
    return blob


def open_archive(
    data: bytes,
    *,
    include_media: bool = True,
    decompress_database: bool = True,
    media_progress: Callable[[int, int], None] | None = None,
    database_progress: Callable[[], None] | None = None,
) -> DeckArchive:
    """Open a deck archive and extract its database and media.

    Args:
        data: Raw archive bytes.
        include_media: Load the media manifest and blobs. Stats sync skips them.
        decompress_database: Decompress the database entry. Callers that want to
            report the decompression step themselves pass False and call
            :func:`packages.anki.compression.decompress`.
        media_progress: Called with ``(index, total)`` every tenth manifest entry.
        database_progress: Called once media is done, before the database
            entry is read.

    Raises:
        ArchiveFormatError: If the data is not a zip or has no collection database.
    """
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ArchiveFormatError(f"Invalid Anki deck file: {exc}") from exc

    with zf:
        names = zf.namelist()

        manifest: dict[str, str] = {}
        media: dict[str, bytes] = {}
        if include_media:
            if MEDIA_MANIFEST_ENTRY in names:
                manifest = parse_media_manifest(zf.read(MEDIA_MANIFEST_ENTRY))
            else:
                logger.info("media_manifest_missing")

            available = set(names)
            total = len(manifest)
            for i, (entry, filename) in enumerate(manifest.items()):
                if entry in available:
                    media[filename] = _read_media_blob(zf, entry)
                if media_progress is not None and i % 10 == 0:
                    media_progress(i, total)
            logger.info("media_loaded", referenced=len(manifest), loaded=len(media))

        if database_progress is not None:
            database_progress()

        database_entry = find_database_entry(names)
        if database_entry is None:
            raise ArchiveFormatError(
                "Invalid Anki deck file. Could not find 'collection.anki2*' database.",
                context={"entries": names[:20]},
            )

        database = zf.read(database_entry)
        if decompress_database:
            database = decompress(database)

    logger.info("archive_opened", database_entry=database_entry, database_size=len(database))
    return DeckArchive(
        database=database,
        database_entry=database_entry,
        media_manifest=manifest,
        media=media,
    )
