"""Gamification API endpoints — profile, badges, leaderboards, levels and activity."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from questcoder.auth.dependencies import get_current_user
from questcoder.database import get_session
from questcoder.db.models import Badge, User
from questcoder.gamification.badge_service import (
    check_and_unlock_badges,
    claim_badge,
    get_available_badges,
    get_user_badge_progress,
)
from questcoder.gamification.levels import level_table
from questcoder.gamification.schemas import (
    ApiResponse,
    BadgeProgressItem,
    BadgeResponse,
    BadgesResponse,
    InitializeResponse,
    LeaderboardResponse,
    LevelEntry,
    LevelHistoryEntry,
    LevelsResponse,
    PatternCompleteRequest,
    PatternCompleteResponse,
    ProfileResponse,
    SolveRequest,
    SolveResponse,
    StatsResponse,
    StreakResponse,
    UnlockedBadge,
    UnsolveRequest,
    XPHistoryEntry,
    XPHistoryResponse,
    XPProgress,
)
from questcoder.gamification.streak_service import (
    get_or_create_progress,
    record_pattern_completed,
    record_solve,
    record_unsolve,
)
from questcoder.gamification.xp_service import (
    get_or_create_gamification,
    get_user_gamification_stats,
    get_xp_history,
    initialize_user_gamification,
    process_xp_gain,
)
from questcoder.leaderboard.cache import invalidate_boards
from questcoder.leaderboard.service import count_participants, find_user_rank, get_leaderboard
from questcoder.notifications.push import CHANNEL_STREAK_UPDATE, commit_and_publish, queue_event
from questcoder.redis_client import get_optional_redis

router = APIRouter(prefix="/api/v1/gamification", tags=["Gamification"])

# Levels shown past the user's current level on /levels
LEVEL_LOOKAHEAD = 5


def _profile(stats: dict) -> ProfileResponse:
    return ProfileResponse(
        total_xp=stats["total_xp"],
        current_level=stats["current_level"],
        xp_progress=XPProgress(**stats["xp_progress"]),
        unlocked_badges=[BadgeResponse.model_validate(b) for b in stats["unlocked_badges"]],
        level_history=[LevelHistoryEntry(**h) for h in stats["level_history"]],
        last_xp_gained_at=stats["last_xp_gained_at"],
    )


def _unlocked(items: list[dict]) -> list[UnlockedBadge]:
    return [
        UnlockedBadge(badge=BadgeResponse.model_validate(item["badge"]), xp_bonus=item["xp_bonus"])
        for item in items
    ]


@router.get("/profile", response_model=ApiResponse[ProfileResponse])
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get XP, level progress, unlocked badges and level history."""
    stats = await get_user_gamification_stats(db, user.id)
    return ApiResponse(data=_profile(stats))


@router.get("/badges", response_model=ApiResponse[BadgesResponse])
async def list_badges(
    category: str | None = Query(None, max_length=32),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get the active badge catalog and the user's progress toward each badge."""
    available = await get_available_badges(db, category)
    progress = await get_user_badge_progress(db, user.id)
    if category:
        progress = [p for p in progress if p["badge"].category == category]

    return ApiResponse(data=BadgesResponse(
        available=[BadgeResponse.model_validate(b) for b in available],
        progress=[
            BadgeProgressItem(
                badge=BadgeResponse.model_validate(p["badge"]),
                is_unlocked=p["is_unlocked"],
                is_eligible=p["is_eligible"],
                progress_percentage=p["progress_percentage"],
            )
            for p in progress
        ],
    ))


@router.post("/badges/{badge_id}/claim", response_model=ApiResponse[UnlockedBadge])
async def claim(
    badge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_optional_redis),
):
    """Claim a badge the user has earned but not yet unlocked."""
    item = await claim_badge(db, redis, user.id, badge_id)
    return ApiResponse(data=_unlocked([item])[0], message="Badge claimed successfully")


@router.get("/leaderboard", response_model=ApiResponse[LeaderboardResponse])
async def leaderboard(
    board: str = Query("xp", alias="type"),
    timeframe: str = Query("all"),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    group_id: int | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get one page of the xp / problems / streak / group leaderboard."""
    result = await get_leaderboard(
        db,
        board,
        timeframe,
        limit=limit,
        offset=offset,
        group_id=group_id,
        current_user_id=user.id,
    )
    return ApiResponse(data=LeaderboardResponse(
        type=board,
        timeframe=timeframe,
        entries=result["entries"],
        total_entries=result["total_entries"],
        current_user_rank=result["current_user_rank"],
        last_updated=result["last_updated"],
        limit=limit,
        offset=offset,
    ))


@router.get("/levels", response_model=ApiResponse[LevelsResponse])
async def list_levels(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get level progress plus the level table up to five levels ahead."""
    stats = await get_user_gamification_stats(db, user.id)
    current = stats["current_level"]

    return ApiResponse(data=LevelsResponse(
        current_level=current,
        total_xp=stats["total_xp"],
        xp_progress=XPProgress(**stats["xp_progress"]),
        levels=[LevelEntry(**row) for row in level_table(current + LEVEL_LOOKAHEAD, current)],
        level_history=[LevelHistoryEntry(**h) for h in stats["level_history"]],
    ))


@router.get("/stats", response_model=ApiResponse[StatsResponse])
async def get_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Profile plus badge completion rate and global XP rank."""
    stats = await get_user_gamification_stats(db, user.id)
    total_badges = (await db.execute(
        select(func.count()).select_from(Badge).where(Badge.is_active.is_(True))
    )).scalar_one()
    unlocked = len(stats["unlocked_badges"])

    return ApiResponse(data=StatsResponse(
        profile=_profile(stats),
        total_badges=total_badges,
        unlocked_badges=unlocked,
        badge_completion_rate=round(unlocked / total_badges * 100, 2) if total_badges else 0.0,
        xp_rank=await find_user_rank(db, user.id, "xp"),
        total_participants=await count_participants(db),
    ))


@router.post("/initialize", response_model=ApiResponse[InitializeResponse])
async def initialize(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Create the user's gamification profile if it does not exist."""
    created = await initialize_user_gamification(db, user.id)
    if created:
        invalidate_boards("xp", "group")
    message = "Gamification initialized" if created else "Gamification already initialized"
    return ApiResponse(data=InitializeResponse(created=created), message=message)


@router.get("/xp/history", response_model=ApiResponse[XPHistoryResponse])
async def xp_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get XP ledger history (paginated, newest first)."""
    history = await get_xp_history(db, user.id, page, per_page)
    return ApiResponse(data=XPHistoryResponse(
        entries=[XPHistoryEntry(**e) for e in history["entries"]],
        total=history["total"],
        page=history["page"],
        per_page=history["per_page"],
    ))


@router.get("/streak", response_model=ApiResponse[StreakResponse])
async def get_streak(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get current and longest daily solve streak."""
    progress = await get_or_create_progress(db, user.id)
    await db.commit()
    return ApiResponse(data=StreakResponse(
        current_streak=progress.current_streak,
        longest_streak=progress.longest_streak,
        last_solved_at=progress.last_solved_at,
    ))


@router.post("/activity/solve", response_model=ApiResponse[SolveResponse])
async def solve(
    body: SolveRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_optional_redis),
):
    """Record a solved problem: advance the streak, award XP, evaluate badges.

    Re-solving a problem that is already solved changes nothing.
    """
    progress, recorded = await record_solve(
        db, user.id, body.problem_id, body.difficulty, body.pattern_name,
    )
    if not recorded:
        gam = await get_or_create_gamification(db, user.id)
        await db.commit()
        return ApiResponse(
            data=SolveResponse(
                xp_gained=0,
                total_xp=gam.total_xp,
                leveled_up=False,
                badges_unlocked=[],
                current_streak=progress.current_streak,
                longest_streak=progress.longest_streak,
            ),
            message="Problem already solved",
        )

    queue_event(db, CHANNEL_STREAK_UPDATE, {
        "user_id": user.id,
        "current_streak": progress.current_streak,
        "longest_streak": progress.longest_streak,
    })
    result = await process_xp_gain(
        db,
        redis,
        user.id,
        body.difficulty,
        current_streak=progress.current_streak,
        source_id=body.problem_id,
    )

    message = f"+{result['xp_gained']} XP"
    if result["leveled_up"]:
        message += f", reached level {result['new_level']}"
    return ApiResponse(
        data=SolveResponse(
            xp_gained=result["xp_gained"],
            total_xp=result["total_xp"],
            leveled_up=result["leveled_up"],
            new_level=result["new_level"],
            badges_unlocked=_unlocked(result["badges_unlocked"]),
            current_streak=progress.current_streak,
            longest_streak=progress.longest_streak,
        ),
        message=message,
    )


@router.post("/activity/unsolve", response_model=ApiResponse[StreakResponse])
async def unsolve(
    body: UnsolveRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Record that a problem was unmarked. XP, badges and streaks are kept."""
    progress, recorded = await record_unsolve(db, user.id, body.problem_id, body.pattern_name)
    await db.commit()
    return ApiResponse(
        data=StreakResponse(
            current_streak=progress.current_streak,
            longest_streak=progress.longest_streak,
            last_solved_at=progress.last_solved_at,
        ),
        message="Problem unmarked" if recorded else "Problem was not solved",
    )


@router.post("/activity/pattern-complete", response_model=ApiResponse[PatternCompleteResponse])
async def pattern_complete(
    body: PatternCompleteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis=Depends(get_optional_redis),
):
    """Record a completed pattern and unlock any badges it earns."""
    progress, recorded = await record_pattern_completed(db, user.id, body.pattern_name)
    unlocked = await check_and_unlock_badges(db, user.id) if recorded else []
    await commit_and_publish(db, redis, boards=("xp", "group") if unlocked else ())

    return ApiResponse(
        data=PatternCompleteResponse(
            patterns_completed=progress.patterns_completed,
            recorded=recorded,
            badges_unlocked=_unlocked(unlocked),
        ),
        message="Pattern completed" if recorded else "Pattern already completed",
    )
