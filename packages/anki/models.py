"""Anki data models."""

from datetime import UTC, datetime
from enum import IntEnum, StrEnum

from pydantic import BaseModel, Field


class StudyMode(StrEnum):
    """Study mode a review was recorded under."""

    READING = "reading"
    LISTENING = "listening"
    PICTURE = "picture"


class RevlogType(IntEnum):
    """Anki revlog entry type."""

    LEARN = 0
    REVIEW = 1
    RELEARN = 2
    FILTERED = 3
    MANUAL = 4


class AnkiNote(BaseModel):
    """Anki note from collection."""

    note_id: int
    fields: list[str]  # Raw field values from Anki (separated by \x1f)


class AnkiCard(BaseModel):
    """Anki card from collection (one orientation of a note)."""

    card_id: int
    note_id: int
    ord: int = 0  # Card ordinal within note: 0=reading, otherwise listening
    due: int | None = None
    ivl: int = 0  # Interval in days
    factor: int = 0  # Ease factor (permille, e.g., 2500 = 250%)
    reps: int = 0
    lapses: int = 0


class AnkiRevlogEntry(BaseModel):
    """Anki review log entry."""

    id: int  # Timestamp in milliseconds
    card_id: int
    ease: int  # 1=again, 2=hard, 3=good, 4=easy
    ivl: int  # New interval
    last_ivl: int  # Previous interval
    factor: int  # Ease factor at time of review
    time_ms: int  # Time spent on review (ms)
    type: int  # See RevlogType


class AnkiTables(BaseModel):
    """The three result sets the merger needs."""

    notes: list[AnkiNote]
    cards: list[AnkiCard]
    revlog: list[AnkiRevlogEntry]


class ReviewEvent(BaseModel):
    """One historical grading event, tagged with its study mode."""

    timestamp: datetime
    timestamp_ms: int
    ease: int
    interval: int
    last_interval: int
    ease_factor: int
    response_time: float  # Seconds
    review_type: int
    study_mode: StudyMode

    @classmethod
    def from_revlog(cls, entry: AnkiRevlogEntry, study_mode: StudyMode) -> "ReviewEvent":
        """Build a review event from a revlog row."""
        return cls(
            timestamp=datetime.fromtimestamp(entry.id / 1000, tz=UTC),
            timestamp_ms=entry.id,
            ease=entry.ease,
            interval=entry.ivl,
            last_interval=entry.last_ivl,
            ease_factor=entry.factor,
            response_time=entry.time_ms / 1000,
            review_type=entry.type,
            study_mode=study_mode,
        )


class PhysicalCard(BaseModel):
    """A card joined with its note fields and tagged reviews."""

    card_id: int
    note_id: int
    ord: int
    fields: list[str] = Field(default_factory=list)
    due: int | None = None
    interval: int = 0
    factor: int = 0
    repetitions: int = 0
    lapses: int = 0
    reviews: list[ReviewEvent] = Field(default_factory=list)
    row_index: int  # 1-based position in the cards table


class LogicalCard(BaseModel):
    """One merged card per note, built from all of its physical cards."""

    note_id: int
    fields: list[str] = Field(default_factory=list)
    due: int | None = None
    interval: int = 0
    factor: int = 0
    repetitions: int = 0
    lapses: int = 0
    reviews: list[ReviewEvent] = Field(default_factory=list)
    original_index: int
    card_ids: list[int] = Field(default_factory=list)


class DeckArchive(BaseModel):
    """Contents of an opened .apkg/.colpkg archive."""

    database: bytes  # Collection database, raw when opened without decompression
    database_entry: str
    media_manifest: dict[str, str] = Field(default_factory=dict)  # zip entry -> filename
    media: dict[str, bytes] = Field(default_factory=dict)  # filename -> blob
