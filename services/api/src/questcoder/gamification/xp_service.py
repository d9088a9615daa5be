"""XP rewards, XP grants with level-up detection, and profile stats."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from questcoder.config import get_settings
from questcoder.db.models import LevelHistory, Notification, UserBadge, UserGamification, XPLedger
from questcoder.errors import ValidationError
from questcoder.gamification.levels import calculate_level, compute_level
from questcoder.notifications.push import (
    CHANNEL_LEADERBOARD_UPDATE,
    CHANNEL_LEVEL_UP,
    CHANNEL_XP_GAINED,
    commit_and_publish,
    queue_event,
    queue_notification,
)

logger = logging.getLogger(__name__)

DIFFICULTIES = ("Easy", "Medium", "Hard")

# (minimum streak days, bonus tier); each tier adds 10% XP
STREAK_BONUS_TIERS: list[tuple[int, int]] = [
    (30, 10),
    (14, 5),
    (7, 3),
    (3, 1),
]
MAX_MULTIPLIER_TENTHS = 20


def base_xp_for(difficulty: str) -> int:
    """Base XP for a problem difficulty (configurable via QC_XP_EASY / _MEDIUM / _HARD)."""
    settings = get_settings()
    table = {
        "Easy": settings.xp_easy,
        "Medium": settings.xp_medium,
        "Hard": settings.xp_hard,
    }
    try:
        return table[difficulty]
    except KeyError:
        raise ValidationError(
            f"Invalid difficulty '{difficulty}'. Must be one of: {', '.join(DIFFICULTIES)}"
        ) from None


def calculate_streak_bonus(current_streak: int) -> int:
    """Map a streak length in days onto its bonus tier."""
    for min_days, tier in STREAK_BONUS_TIERS:
        if current_streak >= min_days:
            return tier
    return 0


def calculate_xp_reward(difficulty: str, streak_bonus: int = 0) -> int:
    """Base XP for ``difficulty`` times the streak multiplier (capped at 2x), floored."""
    # multiplier in tenths: 10 = 1.0x ... 20 = 2.0x
    tenths = min(10 + max(streak_bonus, 0), MAX_MULTIPLIER_TENTHS)
    return base_xp_for(difficulty) * tenths // 10


async def get_or_create_gamification(db: AsyncSession, user_id: int) -> UserGamification:
    """Get or create the denormalized gamification row for a user."""
    result = await db.execute(
        select(UserGamification).where(UserGamification.user_id == user_id)
    )
    gam = result.scalar_one_or_none()
    if gam is None:
        now = datetime.now(timezone.utc)
        gam = UserGamification(
            user_id=user_id,
            total_xp=0,
            current_level=1,
            badges_earned=0,
            created_at=now,
            updated_at=now,
        )
        db.add(gam)
        await db.flush()
    return gam


async def add_xp(
    db: AsyncSession,
    user_id: int,
    amount: int,
    source: str,
    source_id: str | None = None,
    description: str | None = None,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Add XP to a user and recompute their level.

    Non-positive amounts and repeated idempotency keys are no-ops. On level-up
    a level_history row is appended and a notification is emitted.
    Flushes but does not commit; xp_gained / level_up events are queued on
    the session and go out with ``commit_and_publish``.
    """
    gam = await get_or_create_gamification(db, user_id)
    old_level = gam.current_level
    skipped = {
        "granted": False,
        "leveled_up": False,
        "old_level": old_level,
        "new_level": old_level,
        "total_xp": gam.total_xp,
    }

    if amount <= 0:
        return skipped

    if idempotency_key is not None:
        existing = await db.execute(
            select(XPLedger.id).where(XPLedger.idempotency_key == idempotency_key)
        )
        if existing.scalar_one_or_none() is not None:
            return skipped

    if now is None:
        now = datetime.now(timezone.utc)

    db.add(XPLedger(
        user_id=user_id,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description,
        idempotency_key=idempotency_key,
        created_at=now,
    ))

    gam.total_xp += amount
    gam.current_level = calculate_level(gam.total_xp)
    gam.last_xp_gained_at = now
    gam.updated_at = now

    leveled_up = gam.current_level > old_level
    if leveled_up:
        db.add(LevelHistory(
            user_id=user_id,
            level=gam.current_level,
            achieved_at=now,
            xp_at_achievement=gam.total_xp,
        ))

    await db.flush()

    queue_event(db, CHANNEL_XP_GAINED, {
        "user_id": user_id,
        "amount": amount,
        "source": source,
        "total_xp": gam.total_xp,
    })
    if leveled_up:
        await _emit_level_up(db, user_id, old_level, gam.current_level)

    return {
        "granted": True,
        "leveled_up": leveled_up,
        "old_level": old_level,
        "new_level": gam.current_level,
        "total_xp": gam.total_xp,
    }


async def _emit_level_up(
    db: AsyncSession,
    user_id: int,
    old_level: int,
    new_level: int,
) -> None:
    """Store the level-up notification and queue its pub/sub events."""
    notification = Notification(
        user_id=user_id,
        type="gamification",
        subtype="level_up",
        title="Level Up!",
        description=f"You reached level {new_level}",
        action_url="/profile/level",
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()  # Assign notification.id for the push payload

    logger.info("User %s leveled up: %d -> %d", user_id, old_level, new_level)
    queue_notification(db, notification)
    queue_event(db, CHANNEL_LEVEL_UP, {
        "user_id": user_id,
        "old_level": old_level,
        "new_level": new_level,
    })


async def process_xp_gain(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    difficulty: str,
    current_streak: int = 0,
    source_id: str | None = None,
) -> dict:
    """Award XP for a solved problem, then evaluate badges.

    ``xp_gained`` includes badge bonus XP. ``leveled_up`` compares the final
    level against the level before any XP from this solve was added.
    Commits, clears the cached XP / problems / streak / group leaderboards, then
    publishes the queued events.
    """
    from questcoder.gamification.badge_service import check_and_unlock_badges

    streak_bonus = calculate_streak_bonus(current_streak)
    problem_xp = calculate_xp_reward(difficulty, streak_bonus)

    gam = await get_or_create_gamification(db, user_id)
    old_level = gam.current_level

    await add_xp(
        db,
        user_id,
        problem_xp,
        source="problem",
        source_id=source_id,
        description=f"Solved {difficulty} problem",
    )
    badges_unlocked = await check_and_unlock_badges(db, user_id)
    badge_bonus_xp = sum(b["xp_bonus"] for b in badges_unlocked)

    queue_event(db, CHANNEL_LEADERBOARD_UPDATE, {"user_id": user_id, "boards": ["xp", "problems", "streak"]})
    await commit_and_publish(db, redis, boards=("xp", "problems", "streak", "group"))

    final_level = gam.current_level
    leveled_up = final_level > old_level
    result = {
        "xp_gained": problem_xp + badge_bonus_xp,
        "total_xp": gam.total_xp,
        "leveled_up": leveled_up,
        "new_level": final_level if leveled_up else None,
        "badges_unlocked": badges_unlocked,
    }

    logger.info(
        "XP processed for user %s: +%d problem XP + %d badge XP (difficulty=%s, streak_bonus=%d)",
        user_id, problem_xp, badge_bonus_xp, difficulty, streak_bonus,
    )
    return result


async def get_level_history(db: AsyncSession, user_id: int) -> list[dict]:
    """Level-ups in the order they were achieved."""
    result = await db.execute(
        select(LevelHistory)
        .where(LevelHistory.user_id == user_id)
        .order_by(LevelHistory.achieved_at.asc(), LevelHistory.id.asc())
    )
    return [
        {
            "level": row.level,
            "achieved_at": row.achieved_at,
            "xp_at_achievement": row.xp_at_achievement,
        }
        for row in result.scalars()
    ]


async def get_user_gamification_stats(db: AsyncSession, user_id: int) -> dict:
    """XP, level progress, unlocked badges and level history; creates the row if missing."""
    gam = await get_or_create_gamification(db, user_id)
    await db.commit()

    badges_result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.asc())
    )
    level_info = compute_level(gam.total_xp)

    return {
        "total_xp": gam.total_xp,
        "current_level": gam.current_level,
        "xp_progress": {
            "current": level_info["xp_into_level"],
            "required": level_info["xp_for_level"],
            "percentage": level_info["percentage"],
        },
        "unlocked_badges": [ub.badge for ub in badges_result.scalars()],
        "level_history": await get_level_history(db, user_id),
        "last_xp_gained_at": gam.last_xp_gained_at,
    }


async def initialize_user_gamification(db: AsyncSession, user_id: int) -> bool:
    """Create the gamification row if missing. Returns True if it was created."""
    existing = await db.execute(
        select(UserGamification.user_id).where(UserGamification.user_id == user_id)
    )
    if existing.scalar_one_or_none() is not None:
        return False

    await get_or_create_gamification(db, user_id)
    await db.commit()
    logger.info("Gamification initialized for user %s", user_id)
    return True


async def get_xp_history(
    db: AsyncSession, user_id: int, page: int = 1, per_page: int = 50,
) -> dict:
    """Paginated XP ledger, newest first."""
    total_result = await db.execute(
        select(func.count()).select_from(XPLedger).where(XPLedger.user_id == user_id)
    )
    total = total_result.scalar_one()

    offset = (page - 1) * per_page
    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.created_at.desc(), XPLedger.id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return {
        "entries": [
            {
                "amount": e.amount,
                "source": e.source,
                "source_id": e.source_id,
                "description": e.description,
                "created_at": e.created_at,
            }
            for e in result.scalars()
        ],
        "total": total,
        "page": page,
        "per_page": per_page,
    }
