"""Badge eligibility evaluation and idempotent unlocks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from questcoder.db.models import ActivityLog, Badge, Notification, UserBadge, UserGamification, UserProgress
from questcoder.errors import BadgeNotEligibleError, NotFoundError
from questcoder.gamification.streak_service import PROBLEM_SOLVED
from questcoder.gamification.xp_service import DIFFICULTIES, add_xp, get_or_create_gamification
from questcoder.notifications.push import CHANNEL_BADGE_EARNED, commit_and_publish, queue_event, queue_notification

logger = logging.getLogger(__name__)

CRITERIA_TYPES = (
    "problems_solved",
    "streak_days",
    "xp_earned",
    "difficulty_solved",
    "daily_problems",
    "level_reached",
    "patterns_completed",
)


class BadgeCriteria(Protocol):
    criteria_type: str
    criteria_value: int
    criteria_config: dict[str, Any]


@dataclass
class UserCounters:
    """Snapshot of everything badge criteria are evaluated against."""

    has_progress: bool = False
    problems_solved: int = 0
    solved_by_difficulty: dict[str, int] = field(default_factory=dict)
    solved_today: int = 0
    current_streak: int = 0
    patterns_completed: int = 0
    total_xp: int = 0
    level: int = 1


def is_eligible(badge: BadgeCriteria, counters: UserCounters) -> bool:
    """Evaluate a badge's criteria against a user's counters."""
    if not counters.has_progress:
        return False

    ctype = badge.criteria_type
    value = badge.criteria_value
    config = badge.criteria_config or {}

    if ctype == "problems_solved":
        if config.get("require_all_difficulties"):
            return all(counters.solved_by_difficulty.get(d, 0) > 0 for d in DIFFICULTIES)
        return counters.problems_solved >= value
    if ctype == "streak_days":
        return counters.current_streak >= value
    if ctype == "xp_earned":
        return counters.total_xp >= value
    if ctype == "difficulty_solved":
        target = config.get("difficulty")
        if not target:
            return False
        return counters.solved_by_difficulty.get(target, 0) >= value
    if ctype == "daily_problems":
        return counters.solved_today >= value
    if ctype == "level_reached":
        return counters.level >= value
    if ctype == "patterns_completed":
        return counters.patterns_completed >= value
    return False


def progress_percentage(badge: BadgeCriteria, counters: UserCounters) -> int:
    """Percent of the way to a threshold badge (0 for criteria without a linear measure)."""
    measures = {
        "problems_solved": counters.problems_solved,
        "streak_days": counters.current_streak,
        "xp_earned": counters.total_xp,
    }
    current = measures.get(badge.criteria_type)
    if current is None:
        return 0
    if badge.criteria_value <= 0:
        return 100
    return round(min(100.0, current / badge.criteria_value * 100))


async def build_counters(db: AsyncSession, user_id: int, now: datetime | None = None) -> UserCounters:
    """Load the user's progress, solve counts and XP into a UserCounters snapshot."""
    if now is None:
        now = datetime.now(timezone.utc)

    progress = (await db.execute(
        select(UserProgress).where(UserProgress.user_id == user_id)
    )).scalar_one_or_none()
    gam = (await db.execute(
        select(UserGamification).where(UserGamification.user_id == user_id)
    )).scalar_one_or_none()

    by_difficulty_result = await db.execute(
        select(ActivityLog.difficulty, func.count())
        .where(ActivityLog.user_id == user_id, ActivityLog.type == PROBLEM_SOLVED)
        .group_by(ActivityLog.difficulty)
    )
    solved_by_difficulty: dict[str, int] = {}
    for difficulty, count in by_difficulty_result:
        if difficulty is not None:
            solved_by_difficulty[difficulty] = count
    problems_solved = (await db.execute(
        select(func.count()).select_from(ActivityLog)
        .where(ActivityLog.user_id == user_id, ActivityLog.type == PROBLEM_SOLVED)
    )).scalar_one()

    day_start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    solved_today = (await db.execute(
        select(func.count()).select_from(ActivityLog)
        .where(
            ActivityLog.user_id == user_id,
            ActivityLog.type == PROBLEM_SOLVED,
            ActivityLog.occurred_at >= day_start,
            ActivityLog.occurred_at < day_start + timedelta(days=1),
        )
    )).scalar_one()

    return UserCounters(
        has_progress=progress is not None,
        problems_solved=problems_solved,
        solved_by_difficulty=solved_by_difficulty,
        solved_today=solved_today,
        current_streak=progress.current_streak if progress else 0,
        patterns_completed=progress.patterns_completed if progress else 0,
        total_xp=gam.total_xp if gam else 0,
        level=gam.current_level if gam else 1,
    )


async def get_available_badges(db: AsyncSession, category: str | None = None) -> list[Badge]:
    """Active catalog in display order, optionally filtered by category."""
    stmt = select(Badge).where(Badge.is_active.is_(True))
    if category:
        stmt = stmt.where(Badge.category == category)
    result = await db.execute(stmt.order_by(Badge.sort_order, Badge.id))
    return list(result.scalars())


async def get_unlocked_badge_ids(db: AsyncSession, user_id: int) -> set[int]:
    result = await db.execute(
        select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    )
    return set(result.scalars())


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def unlock_badge(
    db: AsyncSession,
    user_id: int,
    badge: Badge,
    now: datetime | None = None,
) -> dict | None:
    """Unlock a badge and grant its XP reward.

    Returns the XP grant result, or None if the user already had the badge.
    The badge XP is keyed on badge + user so it can never be granted twice.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    try:
        async with db.begin_nested():
            db.add(UserBadge(user_id=user_id, badge_id=badge.id, earned_at=now))
    except IntegrityError:
        return None  # Already unlocked by a concurrent request

    gam = await get_or_create_gamification(db, user_id)
    gam.badges_earned += 1
    gam.updated_at = now

    grant = await add_xp(
        db,
        user_id,
        badge.xp_reward,
        source="badge",
        source_id=badge.slug,
        description=f'Unlocked badge: "{badge.name}"',
        idempotency_key=f"badge:{badge.slug}:{user_id}",
        now=now,
    )

    await _emit_badge_earned(db, user_id, badge)
    logger.info("Badge unlocked for user %s: %s (+%d XP)", user_id, badge.name, badge.xp_reward)
    return grant


async def _emit_badge_earned(
    db: AsyncSession,
    user_id: int,
    badge: Badge,
) -> None:
    """Store the badge-earned notification and queue its pub/sub events."""
    notification = Notification(
        user_id=user_id,
        type="gamification",
        subtype="badge_earned",
        title=f'Badge Earned: "{badge.name}"',
        description=f"+{badge.xp_reward} XP: {badge.description}",
        action_url="/profile/badges",
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()

    queue_notification(db, notification)
    queue_event(db, CHANNEL_BADGE_EARNED, {
        "user_id": user_id,
        "badge_id": badge.id,
        "badge_slug": badge.slug,
        "badge_name": badge.name,
        "rarity": badge.rarity,
        "xp_reward": badge.xp_reward,
    })


async def check_and_unlock_badges(
    db: AsyncSession,
    user_id: int,
    now: datetime | None = None,
) -> list[dict]:
    """Unlock every active badge the user now qualifies for.

    Badge XP can push the user over further xp_earned / level_reached
    thresholds, so passes repeat until one unlocks nothing.
    Returns [{"badge": Badge, "xp_bonus": int}, ...] in unlock order.
    Flushes but does not commit; events are queued on the session.
    """
    badges = await get_available_badges(db)
    unlocked_ids = await get_unlocked_badge_ids(db, user_id)
    counters = await build_counters(db, user_id, now)
    unlocked: list[dict] = []

    while True:
        newly_unlocked = 0
        for badge in badges:
            if badge.id in unlocked_ids or not is_eligible(badge, counters):
                continue
            grant = await unlock_badge(db, user_id, badge, now)
            unlocked_ids.add(badge.id)
            if grant is None:
                continue
            counters.total_xp = grant["total_xp"]
            counters.level = grant["new_level"]
            unlocked.append({"badge": badge, "xp_bonus": badge.xp_reward})
            newly_unlocked += 1
        if newly_unlocked == 0:
            break

    return unlocked


async def claim_badge(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    badge_id: int,
) -> dict:
    """Claim a specific badge. Commits any unlocks the evaluation produced.

    Raises NotFoundError for unknown or inactive badges and
    BadgeNotEligibleError when the badge is already held or not yet earned.
    """
    badge = (await db.execute(
        select(Badge).where(Badge.id == badge_id, Badge.is_active.is_(True))
    )).scalar_one_or_none()
    if badge is None:
        raise NotFoundError("Badge not found")

    if await has_badge(db, user_id, badge.id):
        raise BadgeNotEligibleError("Badge already claimed")

    unlocked = await check_and_unlock_badges(db, user_id)
    await commit_and_publish(db, redis, boards=("xp", "group") if unlocked else ())

    for item in unlocked:
        if item["badge"].id == badge.id:
            return item
    raise BadgeNotEligibleError()


async def get_user_badge_progress(db: AsyncSession, user_id: int) -> list[dict]:
    """Per-badge unlock state, eligibility and progress percentage."""
    badges = await get_available_badges(db)
    unlocked_ids = await get_unlocked_badge_ids(db, user_id)
    counters = await build_counters(db, user_id)

    items = []
    for badge in badges:
        is_unlocked = badge.id in unlocked_ids
        items.append({
            "badge": badge,
            "is_unlocked": is_unlocked,
            "is_eligible": not is_unlocked and is_eligible(badge, counters),
            "progress_percentage": 100 if is_unlocked else progress_percentage(badge, counters),
        })
    return items
