"""Turn merged logical cards into storable records."""

from packages.anki.media import MediaLibrary
from packages.anki.models import LogicalCard
from packages.anki.normalizer import VocabularyFields
from packages.frequency.table import FrequencyTable
from packages.importer.models import CardRecord, CardStatsUpdate, ReviewRecord


def ease_factor_from_permille(factor: int) -> float:
    """Anki stores 2.5 as 2500."""
    return factor / 1000


def build_card_record(
    card: LogicalCard,
    media: MediaLibrary,
    frequency: FrequencyTable,
    *,
    embed_media: bool,
    timestamp_ms: int | None = None,
) -> CardRecord:
    """Resolve fields, media and rank for one logical card.

    Args:
        card: Merged card for one note.
        media: Media blobs from the archive.
        frequency: Word rank lookup.
        embed_media: Attach base64 media for upload instead of only filenames.
        timestamp_ms: Value for ``last_modified`` and ``last_anki_sync``.
    """
    fields = VocabularyFields.from_fields(card.fields)

    record = CardRecord(
        nid=card.note_id,
        word=fields.word,
        reading=fields.reading,
        meaning=fields.meaning,
        sentence=fields.sentence,
        sentence_reading=fields.sentence_reading,
        sentence_meaning=fields.sentence_meaning,
        audio_filename=fields.audio_filename,
        sentence_audio_filename=fields.sentence_audio_filename,
        image_filename=fields.image_filename,
        original_index=card.original_index,
        rank=frequency.rank(fields.word),
        due=card.due or None,
        interval=card.interval,
        ease_factor=ease_factor_from_permille(card.factor),
        reps=card.repetitions,
        lapses=card.lapses,
        reviews=[ReviewRecord.from_event(event) for event in card.reviews],
        last_modified=timestamp_ms,
        last_anki_sync=timestamp_ms,
    )

    if embed_media:
        record.word_audio = media.resolve_base64(fields.audio_filename)
        record.sentence_audio = media.resolve_base64(fields.sentence_audio_filename)
        record.image = media.resolve_base64(fields.image_filename)

    return record


def build_stats_update(card: LogicalCard, *, timestamp_ms: int | None = None) -> CardStatsUpdate:
    """Scheduling-only view of a logical card for a stats sync."""
    return CardStatsUpdate(
        nid=card.note_id,
        due=card.due or None,
        interval=card.interval,
        ease_factor=ease_factor_from_permille(card.factor),
        reps=card.repetitions,
        lapses=card.lapses,
        reviews=[ReviewRecord.from_event(event) for event in card.reviews],
        last_anki_sync=timestamp_ms,
    )
