from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, computed_field

# Minimum total XP for levels 1..11
LEVEL_THRESHOLDS = [0, 100, 250, 500, 1000, 2000, 4000, 7000, 11000, 16000, 22000]


def level_for_xp(xp: int) -> int:
    level = 1
    for i in range(1, len(LEVEL_THRESHOLDS)):
        if xp >= LEVEL_THRESHOLDS[i]:
            level = i + 1
        else:
            break
    return level


class ActivityType(str, Enum):
    NOTEBOOK_CREATED = "notebook_created"
    NOTES_GENERATED = "notes_generated"
    FLASHCARD_STUDIED = "flashcard_studied"
    FLASHCARD_GENERATED = "flashcard_generated"
    SOURCE_ADDED = "source_added"


class Activity(BaseModel):
    user_id: str
    type: ActivityType
    notebook_id: str | None = None
    xp_earned: int = 0
    created_at: datetime


class UserStats(BaseModel):
    user_id: str
    total_xp: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: datetime | None = None
    topics_learned: int = 0
    flashcards_studied: int = 0
    total_study_minutes: int = 0
    # Reset at the start of every week (Monday)
    weekly_topics: int = 0
    weekly_flashcards: int = 0
    weekly_xp: int = 0
    week_start_date: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def level(self) -> int:
        return level_for_xp(self.total_xp)


class ActivityRequest(BaseModel):
    type: ActivityType
    notebook_id: str | None = None
    xp_amount: int | None = Field(default=None, ge=0)


class ActivityResult(BaseModel):
    stats: UserStats
    xp_earned: int
    new_level: int


class CalendarDay(BaseModel):
    date: date
    count: int


class ActivityCalendar(BaseModel):
    activity_data: list[CalendarDay]
