"""Tests for merging physical cards into logical cards."""

from packages.anki.merger import (
    build_physical_cards,
    group_by_note,
    merge_cards,
    study_mode_for_ordinal,
)
from packages.anki.models import AnkiCard, AnkiNote, AnkiRevlogEntry, AnkiTables, StudyMode
from packages.anki.reader import read_anki_tables


def _card(card_id: int, note_id: int, ord: int = 0, **kwargs: int) -> AnkiCard:
    return AnkiCard(card_id=card_id, note_id=note_id, ord=ord, **kwargs)


def _review(review_id: int, card_id: int) -> AnkiRevlogEntry:
    return AnkiRevlogEntry(
        id=review_id,
        card_id=card_id,
        ease=3,
        ivl=1,
        last_ivl=0,
        factor=2500,
        time_ms=1200,
        type=1,
    )


def _tables(cards: list[AnkiCard], revlog: list[AnkiRevlogEntry]) -> AnkiTables:
    note_ids = sorted({card.note_id for card in cards})
    return AnkiTables(
        notes=[AnkiNote(note_id=nid, fields=[f"word{nid}", "meaning"]) for nid in note_ids],
        cards=cards,
        revlog=revlog,
    )


class TestStudyMode:
    """Tests for ordinal -> study mode mapping."""

    def test_ordinal_zero_is_reading(self) -> None:
        assert study_mode_for_ordinal(0) is StudyMode.READING

    def test_other_ordinals_are_listening(self) -> None:
        assert study_mode_for_ordinal(1) is StudyMode.LISTENING
        assert study_mode_for_ordinal(2) is StudyMode.LISTENING


class TestBuildPhysicalCards:
    """Tests for joining cards, notes and reviews."""

    def test_reviews_attached_and_tagged(self) -> None:
        tables = _tables(
            [_card(1, 10, ord=0), _card(2, 10, ord=1)],
            [_review(100, 1), _review(101, 2), _review(102, 2)],
        )

        cards = build_physical_cards(tables)

        assert [len(c.reviews) for c in cards] == [1, 2]
        assert cards[0].reviews[0].study_mode is StudyMode.READING
        assert {r.study_mode for r in cards[1].reviews} == {StudyMode.LISTENING}
        assert cards[0].fields == ["word10", "meaning"]
        assert [c.row_index for c in cards] == [1, 2]

    def test_orphan_revlog_rows_ignored(self) -> None:
        tables = _tables([_card(1, 10)], [_review(100, 1), _review(101, 999)])

        cards = build_physical_cards(tables)

        assert len(cards[0].reviews) == 1

    def test_card_without_note_has_empty_fields(self) -> None:
        tables = AnkiTables(notes=[], cards=[_card(1, 10)], revlog=[])

        assert build_physical_cards(tables)[0].fields == []

    def test_review_conversion(self) -> None:
        tables = _tables([_card(1, 10)], [_review(1700000000000, 1)])

        review = build_physical_cards(tables)[0].reviews[0]

        assert review.timestamp_ms == 1700000000000
        assert review.timestamp.isoformat() == "2023-11-14T22:13:20+00:00"
        assert review.response_time == 1.2
        assert review.ease_factor == 2500


class TestGroupByNote:
    """Tests for ordered grouping."""

    def test_groups_in_first_seen_order(self) -> None:
        tables = _tables(
            [_card(1, 30), _card(2, 10), _card(3, 30), _card(4, 20), _card(5, 10)],
            [],
        )

        groups = group_by_note(build_physical_cards(tables))

        assert [g.note_id for g in groups] == [30, 10, 20]
        assert [[c.card_id for c in g.cards] for g in groups] == [[1, 3], [2, 5], [4]]


class TestMergeCards:
    """Tests for the merge rules."""

    def test_single_card_note(self) -> None:
        """A lone card keeps its own reviews, tagged by its ordinal."""
        tables = _tables(
            [_card(1, 10, ord=1, reps=3, lapses=1, ivl=5, factor=2300, due=42)],
            [_review(100, 1), _review(101, 1)],
        )

        [card] = merge_cards(tables)

        assert card.note_id == 10
        assert len(card.reviews) == 2
        assert all(r.study_mode is StudyMode.LISTENING for r in card.reviews)
        assert card.repetitions == 3
        assert card.lapses == 1
        assert card.interval == 5
        assert card.factor == 2300
        assert card.due == 42

    def test_sibling_rules(self) -> None:
        """Sum reps/lapses, max interval/factor, latest due, concatenated reviews."""
        tables = _tables(
            [
                _card(1, 10, ord=0, reps=5, lapses=1, ivl=30, factor=2100, due=100),
                _card(2, 10, ord=1, reps=2, lapses=0, ivl=12, factor=2700, due=160),
                _card(3, 10, ord=2, reps=1, lapses=4, ivl=1, factor=1300, due=130),
            ],
            [_review(100, 1), _review(101, 2), _review(102, 3), _review(103, 3)],
        )

        [card] = merge_cards(tables)

        assert card.repetitions == 8
        assert card.lapses == 5
        assert card.interval == 30
        assert card.factor == 2700
        assert card.due == 160
        assert len(card.reviews) == 4
        assert card.card_ids == [1, 2, 3]

    def test_new_cards_default_factor(self) -> None:
        """Factor 0 on new cards counts as the default, never below it."""
        tables = _tables([_card(1, 10, factor=0), _card(2, 10, factor=0)], [])

        [card] = merge_cards(tables)

        assert card.factor == 2500

    def test_custom_default_factor(self) -> None:
        tables = _tables([_card(1, 10, factor=0)], [])

        [card] = merge_cards(tables, default_factor=2000)

        assert card.factor == 2000

    def test_zero_due_does_not_win(self) -> None:
        tables = _tables([_card(1, 10, due=0), _card(2, 10, due=55), _card(3, 10, due=0)], [])

        [card] = merge_cards(tables)

        assert card.due == 55

    def test_original_index_follows_card_rows(self) -> None:
        """Index is the base card's 1-based row, strictly increasing and unique."""
        tables = _tables(
            [_card(1, 10), _card(2, 20), _card(3, 10), _card(4, 30), _card(5, 20)],
            [],
        )

        merged = merge_cards(tables)
        indexes = [card.original_index for card in merged]

        assert [card.note_id for card in merged] == [10, 20, 30]
        assert indexes == [1, 2, 4]
        assert indexes == sorted(set(indexes))

    def test_one_logical_card_per_note(self) -> None:
        tables = _tables([_card(i, i % 7) for i in range(1, 50)], [])

        merged = merge_cards(tables)

        assert len(merged) == 7
        assert len({card.note_id for card in merged}) == 7


def test_note_500_scenario(sample_collection: bytes) -> None:
    """Two cards of note 500 (3 reading + 2 listening reviews) merge into one."""
    merged = merge_cards(read_anki_tables(sample_collection))

    by_note = {card.note_id: card for card in merged}
    assert len(merged) == 3

    card = by_note[500]
    modes = [review.study_mode for review in card.reviews]
    assert len(card.reviews) == 5
    assert modes.count(StudyMode.READING) == 3
    assert modes.count(StudyMode.LISTENING) == 2
    assert card.repetitions == 10
    assert card.lapses == 3
    assert card.interval == 25
    assert card.factor == 2500
    assert card.due == 150
    assert card.original_index == 1

    assert by_note[501].original_index == 2
    assert by_note[501].reviews == []
    assert by_note[502].original_index == 4
    assert [r.study_mode for r in by_note[502].reviews] == [StudyMode.LISTENING]
