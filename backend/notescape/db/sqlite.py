import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from notescape.config import settings
from notescape.models.flashcard import (
    Flashcard,
    FlashcardContent,
    FlashcardUpdate,
    ReviewResult,
)
from notescape.models.stats import Activity, UserStats

_db_path: Path | None = None

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS flashcards (
    id               TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL,
    notebook_id      TEXT NOT NULL,
    front            TEXT NOT NULL,
    back             TEXT NOT NULL,
    topic            TEXT,
    source_id        TEXT,
    tags             TEXT NOT NULL DEFAULT '[]',
    ease_factor      REAL NOT NULL DEFAULT 2.5,
    interval         INTEGER NOT NULL DEFAULT 1,
    repetitions      INTEGER NOT NULL DEFAULT 0,
    next_review_date TEXT NOT NULL,
    times_reviewed   INTEGER NOT NULL DEFAULT 0,
    times_correct    INTEGER NOT NULL DEFAULT 0,
    last_reviewed_at TEXT,
    version          INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_flashcards_due ON flashcards(user_id, next_review_date);
CREATE INDEX IF NOT EXISTS idx_flashcards_notebook ON flashcards(user_id, notebook_id);

CREATE TABLE IF NOT EXISTS review_log (
    id               TEXT PRIMARY KEY,
    card_id          TEXT NOT NULL REFERENCES flashcards(id) ON DELETE CASCADE,
    user_id          TEXT,
    quality          INTEGER NOT NULL,
    reviewed_at      TEXT NOT NULL,
    interval         INTEGER NOT NULL,
    ease_factor      REAL NOT NULL,
    repetitions      INTEGER NOT NULL,
    next_review_date TEXT NOT NULL,
    times_reviewed   INTEGER NOT NULL,
    times_correct    INTEGER NOT NULL,
    idempotency_key  TEXT,
    UNIQUE (card_id, idempotency_key)
);
CREATE INDEX IF NOT EXISTS idx_review_log_card ON review_log(card_id, reviewed_at);

CREATE TABLE IF NOT EXISTS user_stats (
    user_id             TEXT PRIMARY KEY,
    total_xp            INTEGER NOT NULL DEFAULT 0,
    current_streak      INTEGER NOT NULL DEFAULT 0,
    longest_streak      INTEGER NOT NULL DEFAULT 0,
    last_active_date    TEXT,
    topics_learned      INTEGER NOT NULL DEFAULT 0,
    flashcards_studied  INTEGER NOT NULL DEFAULT 0,
    total_study_minutes INTEGER NOT NULL DEFAULT 0,
    weekly_topics       INTEGER NOT NULL DEFAULT 0,
    weekly_flashcards   INTEGER NOT NULL DEFAULT 0,
    weekly_xp           INTEGER NOT NULL DEFAULT 0,
    week_start_date     TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS activity_log (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    type        TEXT NOT NULL,
    notebook_id TEXT,
    xp_earned   INTEGER NOT NULL DEFAULT 0,
    created_at  TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_activity_user_time ON activity_log(user_id, created_at);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
INSERT OR IGNORE INTO schema_version(version) VALUES (1);
"""


async def init_sqlite(data_dir: Path) -> None:
    global _db_path
    _db_path = data_dir / settings.sqlite_filename
    async with aiosqlite.connect(_db_path) as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()


def get_db_path() -> Path:
    assert _db_path is not None, "SQLite not initialized"
    return _db_path


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(get_db_path()) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


def _ts(moment: datetime) -> str:
    """Fixed-width UTC timestamp; lexical order equals chronological order."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _ts_or_none(moment: datetime | None) -> str | None:
    return _ts(moment) if moment is not None else None


def _now() -> datetime:
    return datetime.now(timezone.utc)


# --- Flashcards ---


def _row_to_flashcard(row: aiosqlite.Row) -> Flashcard:
    d = dict(row)
    d["tags"] = json.loads(d["tags"] or "[]")
    return Flashcard(**d)


async def insert_flashcards(
    db: aiosqlite.Connection,
    user_id: str,
    notebook_id: str,
    cards: list[FlashcardContent],
    now: datetime | None = None,
) -> list[Flashcard]:
    """Insert new cards with default scheduling state, due immediately."""
    stamp = _ts(now or _now())
    card_ids: list[str] = []
    for c in cards:
        card_id = str(uuid.uuid4())
        card_ids.append(card_id)
        await db.execute(
            """INSERT INTO flashcards
               (id, user_id, notebook_id, front, back, topic, source_id, tags,
                next_review_date, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                card_id,
                user_id,
                notebook_id,
                c.front,
                c.back,
                c.topic,
                c.source_id,
                json.dumps(c.tags),
                stamp,
                stamp,
                stamp,
            ),
        )
    await db.commit()

    created: list[Flashcard] = []
    for card_id in card_ids:
        card = await get_flashcard(db, card_id)
        if card is not None:
            created.append(card)
    return created


async def get_flashcard(db: aiosqlite.Connection, card_id: str) -> Flashcard | None:
    # Closed cursor: no read snapshot may outlive the call, or a later write
    # in this connection cannot see a concurrent commit
    async with db.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,)) as cursor:
        row = await cursor.fetchone()
    return _row_to_flashcard(row) if row else None


async def list_flashcards(
    db: aiosqlite.Connection,
    user_id: str | None = None,
    notebook_id: str | None = None,
    due_before: datetime | None = None,
    limit: int | None = None,
) -> list[Flashcard]:
    """Cards matching the filters, soonest-due first (ties by id)."""
    clauses: list[str] = []
    params: list = []
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    if notebook_id is not None:
        clauses.append("notebook_id = ?")
        params.append(notebook_id)
    if due_before is not None:
        clauses.append("next_review_date <= ?")
        params.append(_ts(due_before))

    sql = "SELECT * FROM flashcards"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY next_review_date ASC, id ASC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)

    cursor = await db.execute(sql, params)
    rows = await cursor.fetchall()
    return [_row_to_flashcard(r) for r in rows]


async def get_due_flashcards(
    db: aiosqlite.Connection,
    user_id: str,
    now: datetime,
    limit: int = 20,
) -> list[Flashcard]:
    return await list_flashcards(db, user_id=user_id, due_before=now, limit=limit)


async def update_flashcard_content(
    db: aiosqlite.Connection,
    card_id: str,
    update: FlashcardUpdate,
) -> Flashcard | None:
    card = await get_flashcard(db, card_id)
    if not card:
        return None
    fields = update.model_dump(exclude_none=True)
    if not fields:
        return card
    if "tags" in fields:
        fields["tags"] = json.dumps(fields["tags"])
    fields["updated_at"] = _ts(_now())
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    await db.execute(
        f"UPDATE flashcards SET {set_clause} WHERE id = ?",  # noqa: S608
        list(fields.values()) + [card_id],
    )
    await db.commit()
    return await get_flashcard(db, card_id)


async def delete_flashcard(db: aiosqlite.Connection, card_id: str) -> bool:
    cursor = await db.execute("DELETE FROM flashcards WHERE id = ?", (card_id,))
    await db.commit()
    return (cursor.rowcount or 0) > 0


# --- Reviews ---


async def persist_review(
    db: aiosqlite.Connection,
    card: Flashcard,
    expected_version: int,
    quality: int,
    user_id: str | None = None,
    idempotency_key: str | None = None,
) -> Flashcard | None:
    """
    Compare-and-swap the card's scheduling state and append a review_log row
    in one transaction.

    Returns the stored card, or None when the row's version no longer matches
    expected_version (a concurrent review won). Raises aiosqlite.IntegrityError
    if the idempotency key was already used for this card.
    """
    reviewed_at = card.last_reviewed_at or _now()
    cursor = await db.execute(
        """UPDATE flashcards
           SET ease_factor = ?, interval = ?, repetitions = ?, next_review_date = ?,
               times_reviewed = ?, times_correct = ?, last_reviewed_at = ?,
               version = version + 1, updated_at = ?
           WHERE id = ? AND version = ?""",
        (
            card.ease_factor,
            card.interval,
            card.repetitions,
            _ts(card.next_review_date),
            card.times_reviewed,
            card.times_correct,
            _ts(reviewed_at),
            _ts(_now()),
            card.id,
            expected_version,
        ),
    )
    if (cursor.rowcount or 0) == 0:
        await db.rollback()
        return None

    try:
        await db.execute(
            """INSERT INTO review_log
               (id, card_id, user_id, quality, reviewed_at, interval, ease_factor,
                repetitions, next_review_date, times_reviewed, times_correct,
                idempotency_key)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                str(uuid.uuid4()),
                card.id,
                user_id,
                quality,
                _ts(reviewed_at),
                card.interval,
                card.ease_factor,
                card.repetitions,
                _ts(card.next_review_date),
                card.times_reviewed,
                card.times_correct,
                idempotency_key,
            ),
        )
    except aiosqlite.IntegrityError:
        await db.rollback()
        raise
    await db.commit()
    return await get_flashcard(db, card.id)


async def get_review_by_key(
    db: aiosqlite.Connection, card_id: str, idempotency_key: str
) -> ReviewResult | None:
    async with db.execute(
        """SELECT card_id AS id, quality, interval, ease_factor, repetitions,
                  next_review_date, times_reviewed, times_correct,
                  reviewed_at AS last_reviewed_at
           FROM review_log WHERE card_id = ? AND idempotency_key = ?""",
        (card_id, idempotency_key),
    ) as cursor:
        row = await cursor.fetchone()
    if row is None:
        return None
    return ReviewResult(**dict(row), idempotent=True)


async def count_reviews(db: aiosqlite.Connection, card_id: str) -> int:
    cursor = await db.execute(
        "SELECT COUNT(*) FROM review_log WHERE card_id = ?", (card_id,)
    )
    row = await cursor.fetchone()
    return row[0] if row else 0


# --- User stats / activity ---


async def begin_immediate(db: aiosqlite.Connection) -> None:
    """Take SQLite's write lock up front for a read-modify-write sequence."""
    await db.execute("BEGIN IMMEDIATE")


async def get_user_stats(db: aiosqlite.Connection, user_id: str) -> UserStats | None:
    cursor = await db.execute("SELECT * FROM user_stats WHERE user_id = ?", (user_id,))
    row = await cursor.fetchone()
    return UserStats(**dict(row)) if row else None


async def save_user_stats(
    db: aiosqlite.Connection,
    stats: UserStats,
    activity: Activity | None = None,
) -> None:
    """Upsert the stats row (and append an activity) and commit."""
    await db.execute(
        """INSERT INTO user_stats
           (user_id, total_xp, current_streak, longest_streak, last_active_date,
            topics_learned, flashcards_studied, total_study_minutes,
            weekly_topics, weekly_flashcards, weekly_xp, week_start_date,
            created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(user_id) DO UPDATE SET
             total_xp = excluded.total_xp,
             current_streak = excluded.current_streak,
             longest_streak = excluded.longest_streak,
             last_active_date = excluded.last_active_date,
             topics_learned = excluded.topics_learned,
             flashcards_studied = excluded.flashcards_studied,
             total_study_minutes = excluded.total_study_minutes,
             weekly_topics = excluded.weekly_topics,
             weekly_flashcards = excluded.weekly_flashcards,
             weekly_xp = excluded.weekly_xp,
             week_start_date = excluded.week_start_date,
             updated_at = excluded.updated_at""",
        (
            stats.user_id,
            stats.total_xp,
            stats.current_streak,
            stats.longest_streak,
            _ts_or_none(stats.last_active_date),
            stats.topics_learned,
            stats.flashcards_studied,
            stats.total_study_minutes,
            stats.weekly_topics,
            stats.weekly_flashcards,
            stats.weekly_xp,
            _ts_or_none(stats.week_start_date),
            _ts(stats.created_at),
            _ts(stats.updated_at),
        ),
    )
    if activity is not None:
        await db.execute(
            """INSERT INTO activity_log (id, user_id, type, notebook_id, xp_earned, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                str(uuid.uuid4()),
                activity.user_id,
                activity.type.value,
                activity.notebook_id,
                activity.xp_earned,
                _ts(activity.created_at),
            ),
        )
    await db.commit()


async def list_activities(
    db: aiosqlite.Connection, user_id: str, since: datetime
) -> list[Activity]:
    cursor = await db.execute(
        """SELECT user_id, type, notebook_id, xp_earned, created_at
           FROM activity_log WHERE user_id = ? AND created_at >= ?
           ORDER BY created_at ASC""",
        (user_id, _ts(since)),
    )
    rows = await cursor.fetchall()
    return [Activity(**dict(r)) for r in rows]
