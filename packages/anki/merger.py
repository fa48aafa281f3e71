"""Merge physical cards that share a note into one logical card."""

from dataclasses import dataclass, field

from packages.anki.models import (
    AnkiTables,
    LogicalCard,
    PhysicalCard,
    ReviewEvent,
    StudyMode,
)
from packages.common.logging import get_logger

logger = get_logger(module=__name__)

DEFAULT_EASE_FACTOR = 2500


def study_mode_for_ordinal(ordinal: int) -> StudyMode:
    """Map a card ordinal to the study mode its reviews belong to."""
    return StudyMode.READING if ordinal == 0 else StudyMode.LISTENING


def build_physical_cards(tables: AnkiTables) -> list[PhysicalCard]:
    """Join cards with their note fields and tagged reviews, in cards-row order."""
    fields_by_note = {note.note_id: note.fields for note in tables.notes}

    reviews_by_card: dict[int, list[ReviewEvent]] = {}
    cards_by_id = {card.card_id: card for card in tables.cards}
    for entry in tables.revlog:
        card = cards_by_id.get(entry.card_id)
        if card is None:
            # Revlog rows can outlive their deleted cards
            continue
        reviews_by_card.setdefault(entry.card_id, []).append(
            ReviewEvent.from_revlog(entry, study_mode_for_ordinal(card.ord))
        )

    return [
        PhysicalCard(
            card_id=card.card_id,
            note_id=card.note_id,
            ord=card.ord,
            fields=list(fields_by_note.get(card.note_id, [])),
            due=card.due,
            interval=card.ivl,
            factor=card.factor,
            repetitions=card.reps,
            lapses=card.lapses,
            reviews=reviews_by_card.get(card.card_id, []),
            row_index=index,
        )
        for index, card in enumerate(tables.cards, start=1)
    ]


@dataclass
class NoteGroup:
    """Physical cards of one note, in the order they were seen."""

    note_id: int
    cards: list[PhysicalCard] = field(default_factory=list)


def group_by_note(cards: list[PhysicalCard]) -> list[NoteGroup]:
    """Group cards by note, ordered by each note's first appearance."""
    groups: list[NoteGroup] = []
    position: dict[int, int] = {}
    for card in cards:
        if card.note_id not in position:
            position[card.note_id] = len(groups)
            groups.append(NoteGroup(note_id=card.note_id))
        groups[position[card.note_id]].cards.append(card)
    return groups


def _latest_due(current: int | None, candidate: int | None) -> int | None:
    if candidate and (not current or candidate > current):
        return candidate
    return current


def merge_group(group: NoteGroup, default_factor: int = DEFAULT_EASE_FACTOR) -> LogicalCard:
    """Fold every sibling into the group's first card.

    Repetitions and lapses are summed, interval and ease factor take the
    maximum, due takes the latest non-zero value and reviews are concatenated.
    """
    base, *siblings = group.cards
    merged = LogicalCard(
        note_id=base.note_id,
        fields=base.fields,
        due=base.due,
        interval=base.interval or 0,
        factor=base.factor or default_factor,
        repetitions=base.repetitions,
        lapses=base.lapses,
        reviews=list(base.reviews),
        original_index=base.row_index,
        card_ids=[base.card_id],
    )

    for sibling in siblings:
        merged.reviews.extend(sibling.reviews)
        merged.repetitions += sibling.repetitions
        merged.lapses += sibling.lapses
        merged.interval = max(merged.interval, sibling.interval or 0)
        merged.factor = max(merged.factor, sibling.factor or default_factor)
        merged.due = _latest_due(merged.due, sibling.due)
        merged.card_ids.append(sibling.card_id)

    return merged


def merge_cards(tables: AnkiTables, default_factor: int = DEFAULT_EASE_FACTOR) -> list[LogicalCard]:
    """Collapse the extracted tables into one logical card per note.

    Args:
        tables: Notes, cards and revlog read from the collection.
        default_factor: Ease factor assumed for cards with none (new cards).

    Returns:
        Logical cards ordered by the first appearance of their note.
    """
    physical = build_physical_cards(tables)
    groups = group_by_note(physical)
    logical = [merge_group(group, default_factor) for group in groups]

    logger.info(
        "cards_merged",
        physical_cards=len(physical),
        logical_cards=len(logical),
        reviews=sum(len(card.reviews) for card in logical),
    )
    return logical
