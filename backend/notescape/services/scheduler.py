"""
SM-2 spaced repetition scheduler.

Pure computation over Flashcard scheduling state: no I/O, no clock reads
unless the caller omits the review time. Persisting the returned card is the
caller's job.

Grade scale (quality 0-5):
  0-2  failed recall   -> repetitions and interval reset
  3-5  successful recall, 5 = perfect
"""
from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from notescape.models.flashcard import Flashcard, FlashcardStats

MIN_EASE_FACTOR = 1.3
PASSING_QUALITY = 3
MASTERY_INTERVAL_DAYS = 21
# Largest interval the flashcards table can hold (SQLite INTEGER)
MAX_STORED_INTERVAL = 2**63 - 1
LATEST_REVIEW_DATE = datetime.max.replace(tzinfo=timezone.utc)


class InvalidQualityError(ValueError):
    """Raised when a review quality is not an integer in [0, 5]."""


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (unlike built-in round())."""
    return int(math.floor(value + 0.5))


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def validate_quality(quality: object) -> int:
    # bool is an int subclass but never a valid grade
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(f"quality must be an integer, got {quality!r}")
    if not 0 <= quality <= 5:
        raise InvalidQualityError(f"quality must be between 0 and 5, got {quality}")
    return quality


def next_ease_factor(ease_factor: float, quality: int) -> float:
    miss = 5 - quality
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def next_interval(
    repetitions: int,
    interval: int,
    ease_factor: float,
    max_interval: int | None = None,
) -> int:
    """Interval after a successful recall, from the pre-review state."""
    if repetitions == 0:
        new_interval = 1
    elif repetitions == 1:
        new_interval = 6
    else:
        new_interval = max(1, min(round_half_up(interval * ease_factor), MAX_STORED_INTERVAL))
    if max_interval is not None:
        new_interval = max(1, min(new_interval, max_interval))
    return new_interval


def next_review_at(reviewed_at: datetime, interval: int) -> datetime:
    """reviewed_at plus `interval` days, pinned to LATEST_REVIEW_DATE past year 9999."""
    try:
        return as_utc(reviewed_at + timedelta(days=interval))
    except OverflowError:
        return LATEST_REVIEW_DATE


def apply_review(
    card: Flashcard,
    quality: int,
    reviewed_at: datetime | None = None,
    *,
    max_interval: int | None = None,
) -> Flashcard:
    """
    Compute the card's state after one review.

    Returns a new Flashcard; the input is left untouched. next_review_date is
    reviewed_at plus `interval` calendar days in reviewed_at's own timezone,
    normalised to UTC.
    """
    quality = validate_quality(quality)
    if reviewed_at is None:
        reviewed_at = datetime.now(timezone.utc)
    elif reviewed_at.tzinfo is None:
        reviewed_at = reviewed_at.replace(tzinfo=timezone.utc)

    times_correct = card.times_correct
    if quality >= PASSING_QUALITY:
        times_correct += 1
        interval = next_interval(
            card.repetitions, card.interval, card.ease_factor, max_interval
        )
        repetitions = card.repetitions + 1
    else:
        interval = 1
        repetitions = 0

    return card.model_copy(
        update={
            "times_reviewed": card.times_reviewed + 1,
            "times_correct": times_correct,
            "last_reviewed_at": as_utc(reviewed_at),
            "interval": interval,
            "repetitions": repetitions,
            "ease_factor": next_ease_factor(card.ease_factor, quality),
            "next_review_date": next_review_at(reviewed_at, interval),
        }
    )


def is_due(card: Flashcard, now: datetime) -> bool:
    return as_utc(card.next_review_date) <= as_utc(now)


def is_mastered(card: Flashcard, threshold: int = MASTERY_INTERVAL_DAYS) -> bool:
    return card.interval >= threshold


def summarize(
    cards: Iterable[Flashcard],
    now: datetime,
    mastery_threshold: int = MASTERY_INTERVAL_DAYS,
) -> FlashcardStats:
    """Aggregate counts over a collection of cards. Average EF is 0 when empty."""
    total = due = mastered = 0
    ease_sum = 0.0
    for card in cards:
        total += 1
        ease_sum += card.ease_factor
        if is_due(card, now):
            due += 1
        if is_mastered(card, mastery_threshold):
            mastered += 1
    return FlashcardStats(
        total=total,
        due=due,
        mastered=mastered,
        average_ease_factor=ease_sum / total if total else 0.0,
    )
