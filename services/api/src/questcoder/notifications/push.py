"""Publish gamification events and per-user notifications over Redis pub/sub.

Services queue events on the database session while they work; nothing reaches
Redis until ``commit_and_publish`` has committed the state the events describe.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from questcoder.leaderboard.cache import invalidate_boards

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from questcoder.db.models import Notification

logger = logging.getLogger(__name__)

# Broadcast channels consumed by dashboard subscribers
CHANNEL_XP_GAINED = "pubsub:xp_gained"
CHANNEL_LEVEL_UP = "pubsub:level_up"
CHANNEL_BADGE_EARNED = "pubsub:badge_earned"
CHANNEL_STREAK_UPDATE = "pubsub:streak_update"
CHANNEL_LEADERBOARD_UPDATE = "pubsub:leaderboard_update"

# Session.info key holding [(channel, payload), ...] awaiting commit
_PENDING_KEY = "questcoder.pending_events"


async def publish_event(redis: object | None, channel: str, payload: dict) -> bool:
    """Publish a JSON payload on a channel. Returns False if skipped or failed."""
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[union-attr]
    except Exception:
        logger.warning("Failed to publish %s event", channel, exc_info=True)
        return False
    return True


def notification_payload(notification: Notification) -> dict[str, Any]:
    """The ws:user:{id} message for a flushed notification."""
    return {
        "event": "notification",
        "data": {
            "id": str(notification.id),
            "type": notification.type,
            "subtype": notification.subtype,
            "title": notification.title,
            "description": notification.description,
            "timestamp": (
                notification.created_at.isoformat()
                if notification.created_at
                else None
            ),
            "read": False,
            "actionUrl": notification.action_url,
        },
    }


def _pending(db: AsyncSession) -> list[tuple[str, dict]]:
    return db.info.setdefault(_PENDING_KEY, [])


def queue_event(db: AsyncSession, channel: str, payload: dict) -> None:
    """Hold an event until the session's transaction commits."""
    _pending(db).append((channel, payload))


def queue_notification(db: AsyncSession, notification: Notification) -> None:
    """Hold a per-user notification push until commit. The notification must be flushed."""
    queue_event(db, f"ws:user:{notification.user_id}", notification_payload(notification))


def discard_pending(db: AsyncSession) -> int:
    """Drop queued events, e.g. after a rollback. Returns how many were dropped."""
    return len(db.info.pop(_PENDING_KEY, []))


async def publish_pending(db: AsyncSession, redis: object | None) -> int:
    """Publish and clear queued events. Returns how many were delivered."""
    delivered = 0
    for channel, payload in db.info.pop(_PENDING_KEY, []):
        if await publish_event(redis, channel, payload):
            delivered += 1
    return delivered


async def commit_and_publish(
    db: AsyncSession,
    redis: object | None,
    boards: tuple[str, ...] = (),
) -> None:
    """Commit, clear the given cached leaderboards, then publish what the work queued.

    A failed commit discards the queue so subscribers never see state that
    was not persisted.
    """
    try:
        await db.commit()
    except Exception:
        dropped = discard_pending(db)
        if dropped:
            logger.warning("Commit failed; dropped %d pending events", dropped)
        raise
    if boards:
        invalidate_boards(*boards)
    await publish_pending(db, redis)
