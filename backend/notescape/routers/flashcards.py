"""
Flashcard & spaced repetition router.

Endpoints:
  POST   /flashcards/                    - bulk create cards (due immediately)
  POST   /flashcards/generate            - heuristic cards from plain text
  GET    /flashcards/stats               - total / due / mastered / avg EF for a scope
  GET    /flashcards/users/{uid}/due     - cards due now, soonest first
  GET    /flashcards/users/{uid}         - all of a user's cards
  POST   /flashcards/{id}/review         - submit quality 0-5, run SM-2
  GET    /flashcards/{id}                - single card
  PATCH  /flashcards/{id}                - edit content
  DELETE /flashcards/{id}                - delete card
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query, Response

from notescape.config import settings
from notescape.db.sqlite import (
    delete_flashcard,
    get_db,
    get_due_flashcards,
    get_flashcard,
    insert_flashcards,
    list_flashcards,
    update_flashcard_content,
)
from notescape.models.flashcard import (
    Flashcard,
    FlashcardBulkCreate,
    FlashcardGenerateRequest,
    FlashcardList,
    FlashcardStats,
    FlashcardUpdate,
    ReviewRequest,
    ReviewResult,
)
from notescape.models.stats import ActivityType
from notescape.services.flashcard_generator import generate_key_concept_cards
from notescape.services.ledger import award_activity
from notescape.services.reviews import (
    CardNotFoundError,
    ReviewConflictError,
    submit_review,
)
from notescape.services.scheduler import InvalidQualityError, summarize

logger = logging.getLogger(__name__)
router = APIRouter()


def _now() -> datetime:
    return datetime.now(timezone.utc)


@router.post("/", response_model=FlashcardList, status_code=201)
async def create_cards(
    body: FlashcardBulkCreate,
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardList:
    items = await insert_flashcards(db, body.user_id, body.notebook_id, body.cards)
    return FlashcardList(items=items, total=len(items))


@router.post("/generate", response_model=FlashcardList, status_code=201)
async def generate_cards(
    body: FlashcardGenerateRequest,
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardList:
    """Create key-concept cards from the supplied text and award generation XP."""
    cards = generate_key_concept_cards(
        body.title,
        body.content,
        topic=body.topic,
        max_cards=settings.generate_max_cards,
        min_chars=settings.generate_min_sentence_chars,
        source_id=body.source_id,
    )
    if not cards:
        raise HTTPException(status_code=400, detail="No content available to generate flashcards")

    items = await insert_flashcards(db, body.user_id, body.notebook_id, cards)

    # XP is best-effort; never fails the request
    try:
        await award_activity(
            db,
            body.user_id,
            ActivityType.FLASHCARD_GENERATED,
            _now(),
            notebook_id=body.notebook_id,
        )
    except Exception:
        logger.exception("XP award failed for generated cards (user %s)", body.user_id)

    return FlashcardList(items=items, total=len(items))


@router.get("/stats", response_model=FlashcardStats)
async def card_stats(
    user_id: str = Query(min_length=1),
    notebook_id: str | None = Query(default=None),
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardStats:
    """Summary over a user's cards, optionally narrowed to one notebook."""
    cards = await list_flashcards(db, user_id=user_id, notebook_id=notebook_id)
    return summarize(cards, _now(), settings.mastery_interval_days)


@router.get("/users/{user_id}/due", response_model=FlashcardList)
async def get_due(
    user_id: str,
    limit: int = Query(default=settings.default_due_limit, ge=1, le=200),
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardList:
    """Return cards due for review now, soonest-due first."""
    items = await get_due_flashcards(db, user_id, _now(), limit=limit)
    return FlashcardList(items=items, total=len(items))


@router.get("/users/{user_id}", response_model=FlashcardList)
async def list_user_cards(
    user_id: str,
    notebook_id: str | None = Query(default=None),
    due_only: bool = Query(default=False),
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardList:
    items = await list_flashcards(
        db,
        user_id=user_id,
        notebook_id=notebook_id,
        due_before=_now() if due_only else None,
    )
    return FlashcardList(items=items, total=len(items))


@router.post("/{card_id}/review", response_model=ReviewResult, status_code=201)
async def review_card(
    card_id: str,
    body: ReviewRequest,
    response: Response,
    db: aiosqlite.Connection = Depends(get_db),
) -> ReviewResult:
    """Submit a review quality for a flashcard. Runs SM-2 and notifies the XP ledger."""
    try:
        result = await submit_review(
            db,
            card_id,
            body.quality,
            user_id=body.user_id,
            idempotency_key=body.idempotency_key,
        )
    except InvalidQualityError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except CardNotFoundError as e:
        raise HTTPException(status_code=404, detail="Flashcard not found") from e
    except ReviewConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    if result.idempotent:
        # Replays are not new resources
        response.status_code = 200
    return result


@router.get("/{card_id}", response_model=Flashcard)
async def get_card(
    card_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    card = await get_flashcard(db, card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return card


@router.patch("/{card_id}", response_model=Flashcard)
async def edit_card(
    card_id: str,
    body: FlashcardUpdate,
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    updated = await update_flashcard_content(db, card_id, body)
    if not updated:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return updated


@router.delete("/{card_id}", status_code=204)
async def remove_card(
    card_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    deleted = await delete_flashcard(db, card_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Flashcard not found")
