from notescape.models.flashcard import (
    Flashcard,
    FlashcardBulkCreate,
    FlashcardContent,
    FlashcardGenerateRequest,
    FlashcardList,
    FlashcardStats,
    FlashcardUpdate,
    ReviewRequest,
    ReviewResult,
)
from notescape.models.stats import (
    Activity,
    ActivityCalendar,
    ActivityRequest,
    ActivityResult,
    ActivityType,
    CalendarDay,
    UserStats,
)

__all__ = [
    "Activity",
    "ActivityCalendar",
    "ActivityRequest",
    "ActivityResult",
    "ActivityType",
    "CalendarDay",
    "Flashcard",
    "FlashcardBulkCreate",
    "FlashcardContent",
    "FlashcardGenerateRequest",
    "FlashcardList",
    "FlashcardStats",
    "FlashcardUpdate",
    "ReviewRequest",
    "ReviewResult",
    "UserStats",
]
