from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

import aiosqlite
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ReviewCompleted(BaseModel):
    card_id: str
    user_id: str
    notebook_id: str
    quality: int
    correct: bool
    reviewed_at: datetime


ReviewListener = Callable[[aiosqlite.Connection, ReviewCompleted], Awaitable[None]]

_listeners: list[ReviewListener] = []


def subscribe(listener: ReviewListener) -> None:
    """Register a review listener. Registering the same callable twice is a no-op."""
    if listener not in _listeners:
        _listeners.append(listener)


def unsubscribe(listener: ReviewListener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def listeners() -> list[ReviewListener]:
    return list(_listeners)


async def publish(db: aiosqlite.Connection, event: ReviewCompleted) -> None:
    """Deliver to every listener in registration order; failures are logged, not raised."""
    for listener in list(_listeners):
        try:
            await listener(db, event)
        except Exception:
            logger.exception(
                "Review listener %s failed for card %s",
                getattr(listener, "__name__", listener),
                event.card_id,
            )
