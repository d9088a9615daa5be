"""Activity ledger and daily solve streaks.

Days are UTC calendar days: a solve on the day after the previous solve
extends the streak, a solve on the same day leaves it unchanged, anything
later starts a new streak at 1.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questcoder.db.models import ActivityLog, UserProgress

logger = logging.getLogger(__name__)

PROBLEM_SOLVED = "problem_solved"
PROBLEM_UNSOLVED = "problem_unsolved"
PATTERN_COMPLETED = "pattern_completed"


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_day(dt: datetime) -> date:
    return as_utc(dt).date()


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole UTC calendar days from ``earlier`` to ``later``."""
    return (utc_day(later) - utc_day(earlier)).days


def next_streak(current: int, last_solved_at: datetime | None, now: datetime) -> int:
    """Streak length after a solve at ``now``."""
    if last_solved_at is None:
        return 1
    gap = days_between(last_solved_at, now)
    if gap == 1:
        return current + 1
    if gap > 1:
        return 1
    return max(current, 1)


async def get_or_create_progress(db: AsyncSession, user_id: int) -> UserProgress:
    """Get or create the progress row for a user."""
    result = await db.execute(
        select(UserProgress).where(UserProgress.user_id == user_id)
    )
    progress = result.scalar_one_or_none()
    if progress is None:
        progress = UserProgress(
            user_id=user_id,
            current_streak=0,
            longest_streak=0,
            patterns_completed=0,
            updated_at=datetime.now(timezone.utc),
        )
        db.add(progress)
        await db.flush()
    return progress


async def is_problem_solved(db: AsyncSession, user_id: int, problem_id: str) -> bool:
    """A problem is solved when its latest solve/unsolve event is a solve."""
    result = await db.execute(
        select(ActivityLog.type)
        .where(
            ActivityLog.user_id == user_id,
            ActivityLog.problem_id == problem_id,
            ActivityLog.type.in_((PROBLEM_SOLVED, PROBLEM_UNSOLVED)),
        )
        .order_by(ActivityLog.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none() == PROBLEM_SOLVED


async def record_solve(
    db: AsyncSession,
    user_id: int,
    problem_id: str,
    difficulty: str,
    pattern_name: str | None = None,
    now: datetime | None = None,
) -> tuple[UserProgress, bool]:
    """Append a problem_solved event and advance the streak. Flushes but does not commit.

    Returns (progress, recorded). Solving a problem that is already solved
    records nothing and leaves the streak alone.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    progress = await get_or_create_progress(db, user_id)
    if await is_problem_solved(db, user_id, problem_id):
        return progress, False

    old_streak = progress.current_streak
    progress.current_streak = next_streak(progress.current_streak, progress.last_solved_at, now)
    progress.longest_streak = max(progress.longest_streak, progress.current_streak)
    progress.last_solved_at = now
    progress.updated_at = now

    db.add(ActivityLog(
        user_id=user_id,
        type=PROBLEM_SOLVED,
        problem_id=problem_id,
        pattern_name=pattern_name,
        difficulty=difficulty,
        occurred_at=now,
        event_metadata={"difficulty": difficulty},
    ))
    await db.flush()

    if progress.current_streak != old_streak:
        logger.info("Streak for user %s: %d -> %d", user_id, old_streak, progress.current_streak)
    return progress, True


async def record_unsolve(
    db: AsyncSession,
    user_id: int,
    problem_id: str,
    pattern_name: str | None = None,
    now: datetime | None = None,
) -> tuple[UserProgress, bool]:
    """Append a problem_unsolved event. Streaks, XP and badges are left untouched.

    Returns (progress, recorded); unmarking a problem that is not currently
    solved records nothing.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    progress = await get_or_create_progress(db, user_id)
    if not await is_problem_solved(db, user_id, problem_id):
        return progress, False

    db.add(ActivityLog(
        user_id=user_id,
        type=PROBLEM_UNSOLVED,
        problem_id=problem_id,
        pattern_name=pattern_name,
        occurred_at=now,
        event_metadata={},
    ))
    progress.updated_at = now
    await db.flush()
    return progress, True


async def record_pattern_completed(
    db: AsyncSession,
    user_id: int,
    pattern_name: str,
    now: datetime | None = None,
) -> tuple[UserProgress, bool]:
    """Append a pattern_completed event and bump the completed-pattern counter.

    Each pattern counts once per user; returns (progress, recorded).
    """
    if now is None:
        now = datetime.now(timezone.utc)

    progress = await get_or_create_progress(db, user_id)
    existing = await db.execute(
        select(ActivityLog.id).where(
            ActivityLog.user_id == user_id,
            ActivityLog.type == PATTERN_COMPLETED,
            ActivityLog.pattern_name == pattern_name,
        ).limit(1)
    )
    if existing.scalar_one_or_none() is not None:
        return progress, False

    progress.patterns_completed += 1
    progress.updated_at = now
    db.add(ActivityLog(
        user_id=user_id,
        type=PATTERN_COMPLETED,
        pattern_name=pattern_name,
        occurred_at=now,
        event_metadata={},
    ))
    await db.flush()
    logger.info("User %s completed pattern %s (%d total)", user_id, pattern_name, progress.patterns_completed)
    return progress, True
