"""Leaderboard service — ordered SQL queries behind an in-process TTL cache.

Every board is a single ordered query over active users: primary score
descending, most recent activity descending (nulls last), user id ascending.
Pages and per-user rank lookups are cached separately so a cached page never
carries another user's rank.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from questcoder.config import get_settings
from questcoder.db.models import ActivityLog, StudyGroup, StudyGroupMember, User, UserGamification, UserProgress
from questcoder.errors import NotFoundError, ValidationError
from questcoder.gamification.streak_service import PROBLEM_SOLVED, as_utc
from questcoder.leaderboard.cache import leaderboard_cache, make_cache_key

logger = logging.getLogger(__name__)

BOARD_TYPES = ("xp", "problems", "streak", "group")
TIMEFRAMES = ("all", "daily", "weekly", "monthly")
DEFAULT_LIMIT = 50


def timeframe_start(timeframe: str, now: datetime | None = None) -> datetime | None:
    """Lower bound of a time window; None for ``all``."""
    if timeframe not in TIMEFRAMES:
        raise ValidationError(
            f"Invalid timeframe '{timeframe}'. Must be one of: {', '.join(TIMEFRAMES)}"
        )
    if now is None:
        now = datetime.now(timezone.utc)
    now = as_utc(now)

    if timeframe == "daily":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe == "weekly":
        return now - timedelta(days=7)
    if timeframe == "monthly":
        return now - timedelta(days=30)
    return None


def _validate_page(limit: int, offset: int) -> None:
    max_limit = get_settings().leaderboard_max_limit
    if not 1 <= limit <= max_limit:
        raise ValidationError(f"Limit must be between 1 and {max_limit}")
    if offset < 0:
        raise ValidationError("Offset must be non-negative")


def _xp_query(since: datetime | None, group_id: int | None = None) -> Select:
    stmt = (
        select(
            User.id.label("user_id"),
            User.username,
            User.avatar_url,
            UserGamification.total_xp.label("score"),
            UserGamification.current_level.label("level"),
            UserGamification.last_xp_gained_at.label("last_active"),
        )
        .join(UserGamification, UserGamification.user_id == User.id)
        .where(User.is_active.is_(True))
    )
    if group_id is not None:
        stmt = stmt.join(
            StudyGroupMember,
            (StudyGroupMember.user_id == User.id) & (StudyGroupMember.group_id == group_id),
        )
    if since is not None:
        stmt = stmt.where(UserGamification.last_xp_gained_at >= since)
    return stmt.order_by(
        UserGamification.total_xp.desc(),
        UserGamification.last_xp_gained_at.desc().nulls_last(),
        User.id.asc(),
    )


def _problems_query(since: datetime | None) -> Select:
    solved = (
        select(ActivityLog.user_id, func.count(ActivityLog.id).label("solved"))
        .where(ActivityLog.type == PROBLEM_SOLVED)
    )
    if since is not None:
        solved = solved.where(ActivityLog.occurred_at >= since)
    solved = solved.group_by(ActivityLog.user_id).subquery()

    score = func.coalesce(solved.c.solved, 0)
    return (
        select(
            User.id.label("user_id"),
            User.username,
            User.avatar_url,
            score.label("score"),
            UserProgress.current_streak.label("streak"),
            UserProgress.last_solved_at.label("last_active"),
        )
        .join(UserProgress, UserProgress.user_id == User.id)
        .outerjoin(solved, solved.c.user_id == User.id)
        .where(User.is_active.is_(True))
        .order_by(
            score.desc(),
            UserProgress.last_solved_at.desc().nulls_last(),
            User.id.asc(),
        )
    )


def _streak_query() -> Select:
    return (
        select(
            User.id.label("user_id"),
            User.username,
            User.avatar_url,
            UserProgress.current_streak.label("score"),
            UserProgress.longest_streak.label("longest_streak"),
            UserProgress.last_solved_at.label("last_active"),
        )
        .join(UserProgress, UserProgress.user_id == User.id)
        .where(User.is_active.is_(True), UserProgress.current_streak > 0)
        .order_by(
            UserProgress.current_streak.desc(),
            UserProgress.longest_streak.desc(),
            UserProgress.last_solved_at.desc().nulls_last(),
            User.id.asc(),
        )
    )


def _board_query(board: str, timeframe: str, group_id: int | None, now: datetime | None) -> Select:
    if board not in BOARD_TYPES:
        raise ValidationError(
            f"Invalid leaderboard type '{board}'. Must be one of: {', '.join(BOARD_TYPES)}"
        )
    since = timeframe_start(timeframe, now)
    if board == "xp":
        return _xp_query(since)
    if board == "problems":
        return _problems_query(since)
    if board == "streak":
        return _streak_query()
    if group_id is None:
        raise ValidationError("group_id is required for the group leaderboard")
    return _xp_query(since, group_id)


def _entry_metadata(board: str, row) -> dict:
    last_active = as_utc(row.last_active) if row.last_active else None
    if board in ("xp", "group"):
        return {"level": row.level, "last_active": last_active}
    if board == "problems":
        return {"streak": row.streak or 0, "last_active": last_active}
    return {"longest_streak": row.longest_streak, "last_active": last_active}


async def find_user_rank(
    db: AsyncSession,
    user_id: int,
    board: str,
    timeframe: str = "all",
    group_id: int | None = None,
    now: datetime | None = None,
) -> int | None:
    """1-based position of a user on a board, or None if they are not on it.

    Re-runs the full ordered query and scans it (O(n) in board size).
    """
    stmt = _board_query(board, timeframe, group_id, now)
    result = await db.execute(stmt.with_only_columns(User.id))
    for position, ranked_id in enumerate(result.scalars(), start=1):
        if ranked_id == user_id:
            return position
    return None


async def get_leaderboard(
    db: AsyncSession,
    board: str = "xp",
    timeframe: str = "all",
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
    group_id: int | None = None,
    current_user_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """One page of a board plus the current user's rank.

    Returns {"entries", "total_entries", "current_user_rank", "last_updated"}.
    """
    _validate_page(limit, offset)
    stmt = _board_query(board, timeframe, group_id, now)

    if board == "group":
        group = (await db.execute(
            select(StudyGroup.id).where(StudyGroup.id == group_id)
        )).scalar_one_or_none()
        if group is None:
            raise NotFoundError("Study group not found")

    filters = {"timeframe": timeframe, "group_id": group_id}
    page_key = make_cache_key(board, {**filters, "limit": limit, "offset": offset})
    page = leaderboard_cache.get(page_key)
    if page is None:
        total = (await db.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )).scalar_one()

        rows = (await db.execute(stmt.offset(offset).limit(limit))).all()
        entries = [
            {
                "rank": offset + index + 1,
                "user": {"id": row.user_id, "username": row.username, "avatar_url": row.avatar_url},
                "score": row.score,
                "metadata": _entry_metadata(board, row),
            }
            for index, row in enumerate(rows)
        ]
        page = {
            "entries": entries,
            "total_entries": total,
            "last_updated": datetime.now(timezone.utc),
        }
        leaderboard_cache.set(page_key, page)

    current_user_rank = None
    if current_user_id is not None:
        rank_key = make_cache_key(board, {**filters, "rank_for": current_user_id})
        cached_rank = leaderboard_cache.get(rank_key)
        if cached_rank is None:
            current_user_rank = await find_user_rank(db, current_user_id, board, timeframe, group_id, now)
            # Cache misses as 0 so an unranked user doesn't re-scan every request
            leaderboard_cache.set(rank_key, current_user_rank or 0)
        else:
            current_user_rank = cached_rank or None

    return {**page, "current_user_rank": current_user_rank}


async def count_participants(db: AsyncSession) -> int:
    """Active users with a gamification row (denominator for XP rank)."""
    result = await db.execute(
        select(func.count())
        .select_from(UserGamification)
        .join(User, User.id == UserGamification.user_id)
        .where(User.is_active.is_(True))
    )
    return result.scalar_one()
