from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from notescape.models.flashcard import Flashcard
from notescape.services.scheduler import (
    LATEST_REVIEW_DATE,
    MAX_STORED_INTERVAL,
    MIN_EASE_FACTOR,
    InvalidQualityError,
    apply_review,
    is_due,
    is_mastered,
    next_ease_factor,
    next_interval,
    round_half_up,
    summarize,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# Worked SM-2 sequence from a fresh card


def test_first_perfect_review(new_card):
    card = apply_review(new_card(), 5, T0)

    assert card.repetitions == 1
    assert card.interval == 1
    assert card.ease_factor == pytest.approx(2.6)
    assert card.times_reviewed == 1
    assert card.times_correct == 1
    assert card.last_reviewed_at == T0
    assert card.next_review_date == T0 + timedelta(days=1)


def test_perfect_sequence_then_blackout(new_card):
    first = apply_review(new_card(), 5, T0)
    second = apply_review(first, 5, T0 + timedelta(days=1))
    assert second.repetitions == 2
    assert second.interval == 6
    assert second.ease_factor == pytest.approx(2.7)

    third = apply_review(second, 5, T0 + timedelta(days=7))
    assert third.repetitions == 3
    assert third.interval == 16  # round(6 * 2.7)
    assert third.ease_factor == pytest.approx(2.8)

    failed = apply_review(third, 0, T0 + timedelta(days=23))
    assert failed.repetitions == 0
    assert failed.interval == 1
    # 2.8 + (0.1 - 5 * (0.08 + 5 * 0.02))
    assert failed.ease_factor == pytest.approx(2.0)
    assert failed.times_correct == 3
    assert failed.times_reviewed == 4


def test_repeated_failures_bottom_out_at_floor(new_card):
    card = new_card()
    history = []
    for day in range(20):
        card = apply_review(card, 0, T0 + timedelta(days=day))
        history.append(card.ease_factor)

    assert all(ef >= MIN_EASE_FACTOR for ef in history)
    assert history == sorted(history, reverse=True)
    assert card.ease_factor == MIN_EASE_FACTOR


# Invariants over a grid of starting states


STARTING_STATES = [
    {},
    {"repetitions": 1, "interval": 1, "ease_factor": 1.3},
    {"repetitions": 2, "interval": 6, "ease_factor": 2.5},
    {"repetitions": 7, "interval": 120, "ease_factor": 3.1, "times_reviewed": 9, "times_correct": 7},
]


@pytest.mark.parametrize("quality", range(6))
@pytest.mark.parametrize("state", STARTING_STATES)
def test_review_invariants(new_card, state, quality):
    before = new_card(**state)
    after = apply_review(before, quality, T0)

    assert after.ease_factor >= MIN_EASE_FACTOR
    assert isinstance(after.interval, int)
    assert after.interval >= 1
    assert after.times_reviewed == before.times_reviewed + 1
    assert after.times_reviewed >= after.times_correct >= 0
    if quality < 3:
        assert after.repetitions == 0
        assert after.interval == 1
        assert after.times_correct == before.times_correct
    else:
        assert after.repetitions == before.repetitions + 1
        assert after.times_correct == before.times_correct + 1
    assert after.next_review_date == T0 + timedelta(days=after.interval)


def test_quality_three_is_a_pass_and_two_is_a_fail(new_card):
    card = new_card(repetitions=2, interval=6)

    passed = apply_review(card, 3, T0)
    assert passed.repetitions == 3
    assert passed.times_correct == 1
    assert passed.ease_factor == pytest.approx(2.36)

    failed = apply_review(card, 2, T0)
    assert failed.repetitions == 0
    assert failed.times_correct == 0


def test_second_success_is_six_days_regardless_of_ease(new_card):
    card = new_card(repetitions=1, interval=1, ease_factor=1.3)
    assert apply_review(card, 3, T0).interval == 6


def test_growth_uses_previous_interval_and_ease(new_card):
    card = new_card(repetitions=2, interval=10, ease_factor=2.5)
    reviewed = apply_review(card, 5, T0)
    # 10 * 2.5, not 10 * 2.6
    assert reviewed.interval == 25


def test_interval_rounds_half_up(new_card):
    card = new_card(repetitions=2, interval=5, ease_factor=2.5)
    # 12.5 -> 13; built-in round() would give 12
    assert apply_review(card, 4, T0).interval == 13


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4999) == 2
    assert round_half_up(16.200000000000003) == 16


def test_interval_is_unbounded_unless_capped(new_card):
    card = new_card(repetitions=9, interval=900, ease_factor=2.5)
    assert apply_review(card, 5, T0).interval == 2250
    assert apply_review(card, 5, T0, max_interval=730).interval == 730


def test_long_perfect_streak_pins_next_review_to_latest_date(new_card):
    card = new_card()
    intervals = []
    for _ in range(20):
        card = apply_review(card, 5, T0)
        intervals.append(card.interval)

    assert intervals == sorted(set(intervals))
    assert card.repetitions == 20
    assert card.interval > (LATEST_REVIEW_DATE - T0).days
    assert card.next_review_date == LATEST_REVIEW_DATE
    assert not is_due(card, T0)


def test_interval_stops_at_storage_ceiling():
    assert next_interval(40, MAX_STORED_INTERVAL, 5.0) == MAX_STORED_INTERVAL
    assert next_interval(40, MAX_STORED_INTERVAL // 2, 2.5) == MAX_STORED_INTERVAL


def test_ease_update_table():
    assert next_ease_factor(2.5, 5) == pytest.approx(2.6)
    assert next_ease_factor(2.5, 4) == pytest.approx(2.5)
    assert next_ease_factor(2.5, 3) == pytest.approx(2.36)
    assert next_ease_factor(2.5, 2) == pytest.approx(2.18)
    assert next_ease_factor(2.5, 1) == pytest.approx(1.96)
    assert next_ease_factor(2.5, 0) == pytest.approx(1.7)
    assert next_ease_factor(1.35, 0) == MIN_EASE_FACTOR


@pytest.mark.parametrize("quality", [-1, 6, 3.5, "3", True, None])
def test_invalid_quality_is_rejected(new_card, quality):
    card = new_card()
    with pytest.raises(InvalidQualityError):
        apply_review(card, quality, T0)
    assert card.times_reviewed == 0


def test_input_card_is_not_mutated(new_card):
    card = new_card(repetitions=2, interval=6)
    apply_review(card, 5, T0)
    assert card.repetitions == 2
    assert card.interval == 6
    assert card.times_reviewed == 0
    assert card.last_reviewed_at is None


def test_review_is_deterministic(new_card):
    card = new_card(repetitions=3, interval=16, ease_factor=2.8)
    assert apply_review(card, 4, T0) == apply_review(card, 4, T0)


def test_serialized_card_reviews_identically(new_card):
    card = apply_review(apply_review(new_card(), 5, T0), 4, T0 + timedelta(days=1))
    restored = Flashcard.model_validate_json(card.model_dump_json())

    later = T0 + timedelta(days=7)
    assert apply_review(restored, 5, later) == apply_review(card, 5, later)


def test_next_review_uses_calendar_days_across_dst():
    """A day after noon on the eve of the US spring-forward is noon again, 23h later."""
    ny = ZoneInfo("America/New_York")
    reviewed_at = datetime(2026, 3, 7, 12, 0, tzinfo=ny)
    card = Flashcard(id="c", user_id="u", notebook_id="n", front="f", back="b")

    reviewed = apply_review(card, 5, reviewed_at)

    assert reviewed.next_review_date == datetime(2026, 3, 8, 16, 0, tzinfo=timezone.utc)
    assert reviewed.next_review_date.tzinfo == timezone.utc
    assert reviewed.last_reviewed_at == datetime(2026, 3, 7, 17, 0, tzinfo=timezone.utc)


def test_naive_review_time_is_utc(new_card):
    reviewed = apply_review(new_card(), 5, datetime(2026, 1, 31, 23, 30))
    assert reviewed.next_review_date == datetime(2026, 2, 1, 23, 30, tzinfo=timezone.utc)


# Derived queries


def test_is_due_boundary(new_card):
    card = new_card(next_review_date=T0)
    assert is_due(card, T0)
    assert is_due(card, T0 + timedelta(seconds=1))
    assert not is_due(card, T0 - timedelta(seconds=1))


def test_is_mastered_threshold(new_card):
    assert is_mastered(new_card(interval=21))
    assert not is_mastered(new_card(interval=20))
    assert is_mastered(new_card(interval=10), threshold=10)


def test_summarize(new_card):
    cards = [
        new_card(id="a", next_review_date=T0 - timedelta(days=1), ease_factor=2.5),
        new_card(id="b", next_review_date=T0 + timedelta(days=30), interval=30, ease_factor=2.9),
        new_card(id="c", next_review_date=T0 + timedelta(days=2), interval=2, ease_factor=1.3),
    ]
    stats = summarize(cards, T0)

    assert stats.total == 3
    assert stats.due == 1
    assert stats.mastered == 1
    assert stats.average_ease_factor == pytest.approx((2.5 + 2.9 + 1.3) / 3)


def test_summarize_empty():
    stats = summarize([], T0)
    assert (stats.total, stats.due, stats.mastered, stats.average_ease_factor) == (0, 0, 0, 0.0)
