"""Records produced by an import and handed to storage."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from packages.anki.models import ReviewEvent, StudyMode

# Fields owned by the study app; a stats sync never overwrites them
APP_FIELDS = ("app_answer_rate", "app_total_attempts", "app_correct_attempts", "confused_with")


class ReviewRecord(BaseModel):
    """Review history entry as stored and uploaded."""

    timestamp: datetime
    ease: int
    interval: int
    last_interval: int
    response_time: float
    review_type: int
    ease_factor: int
    study_mode: StudyMode

    @classmethod
    def from_event(cls, event: ReviewEvent) -> "ReviewRecord":
        return cls(
            timestamp=event.timestamp,
            ease=event.ease,
            interval=event.interval,
            last_interval=event.last_interval,
            response_time=event.response_time,
            review_type=event.review_type,
            ease_factor=event.ease_factor,
            study_mode=event.study_mode,
        )


class CardRecord(BaseModel):
    """One persisted vocabulary card, keyed by Anki note ID."""

    nid: int

    # Cleaned note fields
    word: str = ""
    reading: str = ""
    meaning: str = ""
    sentence: str = ""
    sentence_reading: str = ""
    sentence_meaning: str = ""

    # Media references and, for uploads, base64 payloads
    audio_filename: str | None = None
    sentence_audio_filename: str | None = None
    image_filename: str | None = None
    word_audio: str | None = None
    sentence_audio: str | None = None
    image: str | None = None

    # Deck position and frequency
    original_index: int
    rank: int | None = None

    # Anki scheduling state
    due: int | None = None
    interval: int = 0
    ease_factor: float = 2.5  # Anki permille / 1000
    reps: int = 0
    lapses: int = 0
    tags: str = ""
    reviews: list[ReviewRecord] = Field(default_factory=list)

    # App-specific state
    app_answer_rate: float = 0.0
    app_total_attempts: int = 0
    app_correct_attempts: int = 0
    confused_with: list[int] = Field(default_factory=list)

    last_modified: int | None = None  # ms since epoch
    last_anki_sync: int | None = None  # ms since epoch


class CardStatsUpdate(BaseModel):
    """Scheduling state applied to an existing card by a stats sync."""

    nid: int
    due: int | None = None
    interval: int = 0
    ease_factor: float = 2.5
    reps: int = 0
    lapses: int = 0
    reviews: list[ReviewRecord] = Field(default_factory=list)
    last_anki_sync: int | None = None

    def as_payload(self) -> dict[str, Any]:
        """JSON-ready fields to merge into the stored card."""
        return self.model_dump(mode="json", exclude={"nid"})
