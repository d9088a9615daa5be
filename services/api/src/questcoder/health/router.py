"""Liveness, readiness and version endpoints (unauthenticated, no envelope)."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from questcoder.config import get_settings
from questcoder.database import get_session
from questcoder.leaderboard.cache import leaderboard_cache
from questcoder.redis_client import get_optional_redis

router = APIRouter()


async def _check_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        return f"error: {exc}"
    return "ok"


async def _check_redis() -> str:
    redis = get_optional_redis()
    if redis is None:
        return "error: not initialized"
    try:
        await redis.ping()
    except Exception as exc:  # noqa: BLE001
        return f"error: {exc}"
    return "ok"


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness check; 200 while the process is serving."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness check. Redis outages degrade pub/sub and rate limiting but not scoring."""
    checks = {
        "database": await _check_database(db),
        "redis": await _check_redis(),
    }
    return {
        "status": "ready" if all(v == "ok" for v in checks.values()) else "degraded",
        "checks": checks,
        "leaderboard_cache_entries": len(leaderboard_cache),
    }


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
