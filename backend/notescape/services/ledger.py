"""
XP / level / streak bookkeeping.

The functions at the top are pure: they take a UserStats, an explicit `now`
and the timezone that defines calendar days, and return updated copies.
award_activity() and on_review_completed() wrap them with persistence.
"""
from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

import aiosqlite

from notescape.config import settings
from notescape.db.sqlite import begin_immediate, get_user_stats, save_user_stats
from notescape.models.stats import Activity, ActivityType, UserStats
from notescape.services.events import ReviewCompleted

logger = logging.getLogger(__name__)

XP_REWARDS: dict[ActivityType, int] = {
    ActivityType.NOTEBOOK_CREATED: 50,
    ActivityType.NOTES_GENERATED: 100,
    ActivityType.FLASHCARD_STUDIED: 5,
    ActivityType.FLASHCARD_GENERATED: 25,
    ActivityType.SOURCE_ADDED: 25,
}
DEFAULT_XP = 10


def local_zone() -> tzinfo:
    return ZoneInfo(settings.streak_timezone)


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _local_day(moment: datetime, tz: tzinfo):
    return _utc(moment).astimezone(tz).date()


def week_start(now: datetime, tz: tzinfo) -> datetime:
    """Monday 00:00 of now's week in tz, as a UTC datetime."""
    day = _local_day(now, tz)
    monday = day - timedelta(days=day.weekday())
    return datetime.combine(monday, time(), tzinfo=tz).astimezone(timezone.utc)


def advance_streak(stats: UserStats, now: datetime, tz: tzinfo) -> UserStats:
    today = _local_day(now, tz)
    if stats.last_active_date is not None:
        last_day = _local_day(stats.last_active_date, tz)
        # Same day, or a last-active day ahead of the clock: nothing to advance
        if last_day >= today:
            return stats
        streak = stats.current_streak + 1 if last_day == today - timedelta(days=1) else 1
    else:
        streak = 1

    return stats.model_copy(
        update={
            "current_streak": streak,
            "longest_streak": max(stats.longest_streak, streak),
            "last_active_date": _utc(now),
        }
    )


def roll_week(stats: UserStats, now: datetime, tz: tzinfo) -> UserStats:
    start = week_start(now, tz)
    if stats.week_start_date is not None and _utc(stats.week_start_date) >= start:
        return stats
    return stats.model_copy(
        update={
            "weekly_topics": 0,
            "weekly_flashcards": 0,
            "weekly_xp": 0,
            "week_start_date": start,
        }
    )


def record_activity(
    stats: UserStats,
    activity_type: ActivityType,
    now: datetime,
    tz: tzinfo,
    xp: int | None = None,
    notebook_id: str | None = None,
) -> tuple[UserStats, Activity]:
    if xp is None:
        xp = XP_REWARDS.get(activity_type, DEFAULT_XP)

    stats = roll_week(stats, now, tz)
    stats = stats.model_copy(
        update={
            "total_xp": stats.total_xp + xp,
            "weekly_xp": stats.weekly_xp + xp,
            "updated_at": _utc(now),
        }
    )
    stats = advance_streak(stats, now, tz)

    if activity_type == ActivityType.NOTES_GENERATED:
        stats = stats.model_copy(
            update={
                "topics_learned": stats.topics_learned + 1,
                "weekly_topics": stats.weekly_topics + 1,
            }
        )
    elif activity_type == ActivityType.FLASHCARD_STUDIED:
        stats = stats.model_copy(
            update={
                "flashcards_studied": stats.flashcards_studied + 1,
                "weekly_flashcards": stats.weekly_flashcards + 1,
            }
        )

    activity = Activity(
        user_id=stats.user_id,
        type=activity_type,
        notebook_id=notebook_id,
        xp_earned=xp,
        created_at=_utc(now),
    )
    return stats, activity


def review_xp(quality: int) -> int:
    return settings.review_xp_correct if quality >= 3 else settings.review_xp_incorrect


# --- Persistence wrappers ---


async def get_or_create_stats(
    db: aiosqlite.Connection, user_id: str, now: datetime
) -> UserStats:
    """Load a user's stats, creating the row on first access, with the weekly rollover applied."""
    stats = await get_user_stats(db, user_id)
    if stats is None:
        stats = UserStats(user_id=user_id, created_at=_utc(now), updated_at=_utc(now))
    rolled = roll_week(stats, now, local_zone())
    if rolled is not stats:
        await save_user_stats(db, rolled)
    return rolled


async def award_activity(
    db: aiosqlite.Connection,
    user_id: str,
    activity_type: ActivityType,
    now: datetime,
    xp: int | None = None,
    notebook_id: str | None = None,
) -> tuple[UserStats, Activity]:
    await begin_immediate(db)
    try:
        stats = await get_user_stats(db, user_id)
        if stats is None:
            stats = UserStats(user_id=user_id, created_at=_utc(now), updated_at=_utc(now))
        stats, activity = record_activity(
            stats, activity_type, now, local_zone(), xp=xp, notebook_id=notebook_id
        )
        await save_user_stats(db, stats, activity)
    except Exception:
        await db.rollback()
        raise
    logger.info(
        "Awarded %d XP to %s for %s (streak %d)",
        activity.xp_earned,
        user_id,
        activity_type.value,
        stats.current_streak,
    )
    return stats, activity


async def on_review_completed(db: aiosqlite.Connection, event: ReviewCompleted) -> None:
    await award_activity(
        db,
        event.user_id,
        ActivityType.FLASHCARD_STUDIED,
        event.reviewed_at,
        xp=review_xp(event.quality),
        notebook_id=event.notebook_id,
    )
