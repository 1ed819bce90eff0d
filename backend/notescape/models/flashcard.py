from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, StrictInt


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Flashcard(BaseModel):
    id: str
    user_id: str
    notebook_id: str
    front: str
    back: str
    topic: str | None = None
    source_id: str | None = None    # source document the card came from
    tags: list[str] = Field(default_factory=list)
    ease_factor: float = 2.5        # SM-2 EF, floored at 1.3
    interval: int = 1               # days until next review
    repetitions: int = 0            # consecutive successful recalls
    next_review_date: datetime = Field(default_factory=_utcnow)
    times_reviewed: int = 0
    times_correct: int = 0
    last_reviewed_at: datetime | None = None
    version: int = 0                # bumped on every persisted review
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class FlashcardList(BaseModel):
    items: list[Flashcard]
    total: int


class FlashcardContent(BaseModel):
    front: str = Field(min_length=1)
    back: str = Field(min_length=1)
    topic: str | None = None
    source_id: str | None = None
    tags: list[str] = Field(default_factory=list)


class FlashcardBulkCreate(BaseModel):
    user_id: str = Field(min_length=1)
    notebook_id: str = Field(min_length=1)
    cards: list[FlashcardContent] = Field(min_length=1, max_length=200)


class FlashcardGenerateRequest(BaseModel):
    user_id: str = Field(min_length=1)
    notebook_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    content: str
    topic: str | None = None
    source_id: str | None = None


class FlashcardUpdate(BaseModel):
    front: str | None = None
    back: str | None = None
    topic: str | None = None
    tags: list[str] | None = None


class ReviewRequest(BaseModel):
    quality: StrictInt = Field(ge=0, le=5)  # 0-2 = failed recall, 3-5 = recalled
    user_id: str | None = None
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=64)


class ReviewResult(BaseModel):
    id: str
    quality: int
    interval: int
    ease_factor: float
    repetitions: int
    next_review_date: datetime
    times_reviewed: int
    times_correct: int
    last_reviewed_at: datetime | None
    idempotent: bool = False


class FlashcardStats(BaseModel):
    total: int
    due: int
    mastered: int
    average_ease_factor: float
