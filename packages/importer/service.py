"""Import service: Anki deck archive -> merged cards -> storage."""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from packages.anki.archive import ArchiveSource, load_archive_bytes, open_archive
from packages.anki.compression import decompress
from packages.anki.media import MediaLibrary
from packages.anki.merger import merge_cards
from packages.anki.models import LogicalCard
from packages.anki.reader import read_anki_tables
from packages.common.config import Settings, get_settings
from packages.common.logging import clear_import_id, get_logger, set_import_id
from packages.frequency.table import FrequencyService
from packages.importer.models import CardRecord
from packages.importer.records import build_card_record, build_stats_update
from packages.storage import LAST_ANKI_SYNC, LAST_FULL_IMPORT, TOTAL_CARDS, CardSink

logger = get_logger(module=__name__)

# Called with (percent 0-100, message). Not guarded: it must not raise.
ProgressCallback = Callable[[int, str], None]


@dataclass
class ImportResult:
    """Statistics from a full import."""

    cards: int = 0
    physical_cards: int = 0
    reviews: int = 0
    media_files: int = 0
    ranked_cards: int = 0
    batches: int = 0
    duration_ms: int = 0
    media_filenames: list[str] = field(default_factory=list)


@dataclass
class StatsSyncResult:
    """Statistics from a stats-only sync."""

    cards_updated: int = 0
    cards_missing: int = 0
    reviews: int = 0
    duration_ms: int = 0
    missing_note_ids: list[int] = field(default_factory=list)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _report(progress: ProgressCallback | None, percent: int, message: str) -> None:
    if progress is not None:
        progress(percent, message)


def chunked(records: list[CardRecord], size: int) -> list[list[CardRecord]]:
    """Split ``records`` into consecutive batches of at most ``size``."""
    return [records[i : i + size] for i in range(0, len(records), size)]


class ImportService:
    """Runs deck imports and stats syncs against one storage backend."""

    def __init__(
        self,
        sink: CardSink,
        settings: Settings | None = None,
        frequency: FrequencyService | None = None,
    ) -> None:
        """Initialize import service.

        Args:
            sink: Storage backend receiving the cards.
            settings: Settings override; defaults to environment settings.
            frequency: Frequency rank source; built from settings when omitted.
        """
        self.sink = sink
        self.settings = settings or get_settings()
        self.frequency = frequency or FrequencyService(
            self.settings.frequency_path,
            self.settings.frequency_sheet_index,
        )

    async def _load_logical_cards(
        self,
        source: ArchiveSource,
        progress: ProgressCallback | None,
        *,
        include_media: bool,
    ) -> tuple[list[LogicalCard], MediaLibrary, int]:
        """Archive -> decompressed database -> tables -> merged cards."""
        _report(progress, 0, "Loading deck file...")
        data = await load_archive_bytes(source, timeout=self.settings.api_timeout_seconds)

        _report(progress, 10, "Extracting archive...")
        if include_media:
            _report(progress, 20, "Loading media files...")

        def media_progress(index: int, total: int) -> None:
            percent = 20 + (index * 20) // max(total, 1)
            _report(progress, percent, f"Loading media {index + 1}/{total}...")

        archive = open_archive(
            data,
            include_media=include_media,
            decompress_database=False,
            media_progress=media_progress if include_media else None,
            database_progress=lambda: _report(progress, 40, "Loading database..."),
        )

        _report(progress, 45, "Decompressing database if needed...")
        database = decompress(archive.database)

        _report(progress, 50, "Parsing Anki database...")
        tables = read_anki_tables(
            database,
            allow_empty_revlog=self.settings.allow_empty_revlog,
        )

        _report(progress, 60, "Processing cards...")
        cards = merge_cards(tables, default_factor=self.settings.default_ease_factor)
        return cards, MediaLibrary(archive.media), len(tables.cards)

    async def import_deck(
        self,
        source: ArchiveSource,
        progress: ProgressCallback | None = None,
    ) -> ImportResult:
        """Import a deck, replacing stored cards that share a note ID.

        Args:
            source: Archive bytes, a file path, or an HTTP(S) URL.
            progress: Optional ``(percent, message)`` callback.

        Returns:
            ImportResult with counts for the run.

        Raises:
            ArchiveFormatError: If the archive has no collection database.
            MissingTableError: If notes, cards or revlog is empty.
            PersistenceError: If a batch write fails; earlier batches stay written.
        """
        start_time = datetime.now(UTC)
        set_import_id()
        result = ImportResult()

        try:
            logger.info("import_started", source=_describe(source))
            cards, media, physical = await self._load_logical_cards(
                source, progress, include_media=True
            )
            result.physical_cards = physical
            result.media_files = len(media)
            result.media_filenames = media.filenames()

            if not self.sink.embed_media and len(media):
                await self.sink.save_media(dict(media.items()))

            _report(progress, 70, "Loading frequency data...")
            frequency = self.frequency.get_table()

            _report(progress, 80, "Creating card records...")
            now = _now_ms()
            records = [
                build_card_record(
                    card,
                    media,
                    frequency,
                    embed_media=self.sink.embed_media,
                    timestamp_ms=now,
                )
                for card in cards
            ]
            result.cards = len(records)
            result.reviews = sum(len(record.reviews) for record in records)
            result.ranked_cards = sum(1 for record in records if record.rank is not None)

            _report(progress, 90, f"Saving {len(records)} cards...")
            batches = chunked(records, self.settings.batch_size)
            for number, batch in enumerate(batches, start=1):
                percent = 90 + (number * 9) // len(batches)
                _report(
                    progress,
                    percent,
                    f"Saving batch {number}/{len(batches)} ({len(batch)} cards)...",
                )
                await self.sink.save_cards(batch)
                result.batches = number

            await self.sink.set_metadata(
                {LAST_FULL_IMPORT: _now_ms(), TOTAL_CARDS: len(records)}
            )
            _report(progress, 100, "Import complete!")

            result.duration_ms = _elapsed_ms(start_time)
            logger.info(
                "import_completed",
                cards=result.cards,
                reviews=result.reviews,
                media_files=result.media_files,
                ranked_cards=result.ranked_cards,
                batches=result.batches,
                duration_ms=result.duration_ms,
            )
            return result
        except Exception:
            logger.exception("import_failed", batches_written=result.batches)
            raise
        finally:
            clear_import_id()

    async def sync_stats(
        self,
        source: ArchiveSource,
        progress: ProgressCallback | None = None,
    ) -> StatsSyncResult:
        """Refresh scheduling state of stored cards from a newer export.

        Fields, media and frequency ranks are left alone, and so are the
        app's own answer-rate counters and confusion links. Notes that are
        not in storage yet are skipped.
        """
        start_time = datetime.now(UTC)
        set_import_id()
        result = StatsSyncResult()

        try:
            logger.info("stats_sync_started", source=_describe(source))
            cards, _media, _physical = await self._load_logical_cards(
                source, progress, include_media=False
            )

            _report(progress, 70, "Loading stored cards...")
            note_index = await self.sink.list_note_index()

            now = _now_ms()
            for number, card in enumerate(cards, start=1):
                record_id = note_index.get(card.note_id)
                if record_id is None:
                    result.missing_note_ids.append(card.note_id)
                    continue
                update = build_stats_update(card, timestamp_ms=now)
                await self.sink.update_card_stats(record_id, update)
                result.cards_updated += 1
                result.reviews += len(update.reviews)
                if number % 100 == 0:
                    percent = 70 + (number * 29) // len(cards)
                    _report(progress, percent, f"Updated {number}/{len(cards)} cards...")

            result.cards_missing = len(result.missing_note_ids)
            await self.sink.set_metadata({LAST_ANKI_SYNC: _now_ms()})
            _report(progress, 100, "Sync complete!")

            result.duration_ms = _elapsed_ms(start_time)
            if result.cards_missing:
                logger.warning("stats_sync_notes_not_stored", count=result.cards_missing)
            logger.info(
                "stats_sync_completed",
                cards_updated=result.cards_updated,
                cards_missing=result.cards_missing,
                duration_ms=result.duration_ms,
            )
            return result
        except Exception:
            logger.exception("stats_sync_failed")
            raise
        finally:
            clear_import_id()

    async def get_import_history(self) -> dict[str, Any]:
        """Timestamps of the last import and sync, and the stored card count."""
        metadata = await self.sink.get_metadata()
        return {
            LAST_FULL_IMPORT: metadata.get(LAST_FULL_IMPORT),
            LAST_ANKI_SYNC: metadata.get(LAST_ANKI_SYNC),
            TOTAL_CARDS: metadata.get(TOTAL_CARDS),
        }

    async def is_initialized(self) -> bool:
        """Whether a full import has completed against this backend."""
        history = await self.get_import_history()
        return history[LAST_FULL_IMPORT] is not None


def _elapsed_ms(start_time: datetime) -> int:
    return int((datetime.now(UTC) - start_time).total_seconds() * 1000)


def _describe(source: ArchiveSource) -> str:
    if isinstance(source, bytes | bytearray):
        return f"<{len(source)} bytes>"
    return str(source)


async def import_anki_deck(
    source: ArchiveSource,
    sink: CardSink,
    settings: Settings | None = None,
    progress: ProgressCallback | None = None,
) -> ImportResult:
    """Convenience function to run one full import.

    Args:
        source: Archive bytes, a file path, or an HTTP(S) URL.
        sink: Storage backend.
        settings: Optional settings override.
        progress: Optional ``(percent, message)`` callback.

    Returns:
        ImportResult with operation counts.
    """
    service = ImportService(sink, settings)
    return await service.import_deck(source, progress)


async def sync_anki_stats(
    source: ArchiveSource,
    sink: CardSink,
    settings: Settings | None = None,
    progress: ProgressCallback | None = None,
) -> StatsSyncResult:
    """Convenience function to run one stats-only sync."""
    service = ImportService(sink, settings)
    return await service.sync_stats(source, progress)
