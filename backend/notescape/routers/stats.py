from collections import Counter
from datetime import datetime, timedelta, timezone

import aiosqlite
from fastapi import APIRouter, Depends, Query

from notescape.db.sqlite import get_db, list_activities
from notescape.models.stats import (
    ActivityCalendar,
    ActivityRequest,
    ActivityResult,
    CalendarDay,
    UserStats,
)
from notescape.services.ledger import award_activity, get_or_create_stats

router = APIRouter()


@router.get("/{user_id}", response_model=UserStats)
async def get_stats(user_id: str, db: aiosqlite.Connection = Depends(get_db)):
    return await get_or_create_stats(db, user_id, datetime.now(timezone.utc))


@router.post("/{user_id}/activity", response_model=ActivityResult)
async def log_activity(
    user_id: str, body: ActivityRequest, db: aiosqlite.Connection = Depends(get_db)
):
    stats, activity = await award_activity(
        db,
        user_id,
        body.type,
        datetime.now(timezone.utc),
        xp=body.xp_amount or None,
        notebook_id=body.notebook_id,
    )
    return ActivityResult(stats=stats, xp_earned=activity.xp_earned, new_level=stats.level)


@router.get("/{user_id}/activity-calendar", response_model=ActivityCalendar)
async def activity_calendar(
    user_id: str,
    weeks: int = Query(default=12, ge=1, le=104),
    db: aiosqlite.Connection = Depends(get_db),
):
    since = datetime.now(timezone.utc) - timedelta(weeks=weeks)
    activities = await list_activities(db, user_id, since)
    counts = Counter(a.created_at.astimezone(timezone.utc).date() for a in activities)
    return ActivityCalendar(
        activity_data=[CalendarDay(date=d, count=n) for d, n in sorted(counts.items())]
    )
