"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from questcoder.config import get_settings
from questcoder.database import close_db, create_all, get_session, init_db
from questcoder.gamification.router import router as gamification_router
from questcoder.gamification.seed import seed_badges
from questcoder.health.router import router as health_router
from questcoder.leaderboard.cache import leaderboard_cache
from questcoder.middleware import setup_middleware
from questcoder.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.database_url.startswith("sqlite"):
        # Local runs without Postgres/Alembic
        await create_all()
    await init_redis(settings.redis_url)
    leaderboard_cache.ttl_seconds = settings.leaderboard_cache_ttl_seconds

    # Seed badge definitions (idempotent)
    try:
        async for db in get_session():
            await seed_badges(db)
            break
    except Exception:
        logger.warning("Badge seeding failed (tables may not exist yet)", exc_info=True)

    yield

    leaderboard_cache.clear()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="QuestCoder Gamification API",
        description="XP, levels, badges, streaks and leaderboards for QuestCoder",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)

    return app


app = create_app()
