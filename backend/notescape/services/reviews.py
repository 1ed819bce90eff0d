from __future__ import annotations

import logging
from datetime import datetime, timezone

import aiosqlite

from notescape.config import settings
from notescape.db.sqlite import get_flashcard, get_review_by_key, persist_review
from notescape.models.flashcard import Flashcard, ReviewResult
from notescape.services.events import ReviewCompleted, publish
from notescape.services.scheduler import PASSING_QUALITY, apply_review, validate_quality

logger = logging.getLogger(__name__)


class CardNotFoundError(LookupError):
    """Raised when a review targets a card id that does not exist."""


class ReviewConflictError(Exception):
    """Raised when the card changed between read and write; re-read and resubmit."""


def _result(card: Flashcard, quality: int, idempotent: bool = False) -> ReviewResult:
    return ReviewResult(
        id=card.id,
        quality=quality,
        interval=card.interval,
        ease_factor=card.ease_factor,
        repetitions=card.repetitions,
        next_review_date=card.next_review_date,
        times_reviewed=card.times_reviewed,
        times_correct=card.times_correct,
        last_reviewed_at=card.last_reviewed_at,
        idempotent=idempotent,
    )


async def submit_review(
    db: aiosqlite.Connection,
    card_id: str,
    quality: int,
    user_id: str | None = None,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> ReviewResult:
    """
    Read the card, run the scheduler, and compare-and-swap the result.

    A repeated idempotency_key returns the stored outcome without touching the
    card. When user_id is given, a ReviewCompleted event is published after
    the write commits.
    """
    quality = validate_quality(quality)
    now = now or datetime.now(timezone.utc)
    logger.info("Review received: card=%s quality=%d user=%s", card_id, quality, user_id)

    card = await get_flashcard(db, card_id)
    if card is None:
        raise CardNotFoundError(card_id)

    if idempotency_key:
        existing = await get_review_by_key(db, card_id, idempotency_key)
        if existing is not None:
            logger.info("Idempotent replay for card %s (key %s)", card_id, idempotency_key)
            return existing

    reviewed = apply_review(card, quality, now, max_interval=settings.max_interval_days)

    try:
        stored = await persist_review(
            db,
            reviewed,
            expected_version=card.version,
            quality=quality,
            user_id=user_id,
            idempotency_key=idempotency_key,
        )
    except aiosqlite.IntegrityError:
        # Same key committed by a concurrent request between our check and write
        if not idempotency_key:
            raise
        existing = await get_review_by_key(db, card_id, idempotency_key)
        if existing is None:
            raise
        logger.info("Idempotent replay for card %s (key %s, raced)", card_id, idempotency_key)
        return existing

    if stored is None:
        logger.warning("Review conflict on card %s (version %d is stale)", card_id, card.version)
        raise ReviewConflictError(f"Flashcard {card_id} was modified concurrently")

    logger.info(
        "Review scheduled: card=%s interval=%d ease=%.2f next=%s",
        card_id,
        stored.interval,
        stored.ease_factor,
        stored.next_review_date.isoformat(),
    )

    if user_id:
        await publish(
            db,
            ReviewCompleted(
                card_id=card_id,
                user_id=user_id,
                notebook_id=stored.notebook_id,
                quality=quality,
                correct=quality >= PASSING_QUALITY,
                reviewed_at=now,
            ),
        )

    return _result(stored, quality)
