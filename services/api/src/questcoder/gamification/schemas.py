"""Pydantic request/response models for gamification endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard response envelope."""

    success: bool = True
    data: T | None = None
    message: str | None = None


# --- Badge ---


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    name: str
    description: str
    category: str
    rarity: str
    criteria_type: str
    criteria_value: int
    criteria_config: dict[str, Any] = {}
    xp_reward: int
    icon_url: str | None = None


class BadgeProgressItem(BaseModel):
    badge: BadgeResponse
    is_unlocked: bool
    is_eligible: bool
    progress_percentage: int


class BadgesResponse(BaseModel):
    available: list[BadgeResponse]
    progress: list[BadgeProgressItem]


class UnlockedBadge(BaseModel):
    badge: BadgeResponse
    xp_bonus: int


# --- XP & levels ---


class XPProgress(BaseModel):
    current: int
    required: int
    percentage: float


class LevelHistoryEntry(BaseModel):
    level: int
    achieved_at: datetime
    xp_at_achievement: int


class ProfileResponse(BaseModel):
    total_xp: int
    current_level: int
    xp_progress: XPProgress
    unlocked_badges: list[BadgeResponse]
    level_history: list[LevelHistoryEntry]
    last_xp_gained_at: datetime | None = None


class LevelEntry(BaseModel):
    level: int
    xp_required: int
    is_unlocked: bool
    is_current: bool


class LevelsResponse(BaseModel):
    current_level: int
    total_xp: int
    xp_progress: XPProgress
    levels: list[LevelEntry]
    level_history: list[LevelHistoryEntry]


class XPHistoryEntry(BaseModel):
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Leaderboard ---


class LeaderboardUser(BaseModel):
    id: int
    username: str
    avatar_url: str | None = None


class LeaderboardEntry(BaseModel):
    rank: int
    user: LeaderboardUser
    score: int
    metadata: dict[str, Any] = {}


class LeaderboardResponse(BaseModel):
    type: str
    timeframe: str
    entries: list[LeaderboardEntry]
    total_entries: int
    current_user_rank: int | None = None
    last_updated: datetime
    limit: int
    offset: int


# --- Stats ---


class StatsResponse(BaseModel):
    profile: ProfileResponse
    total_badges: int
    unlocked_badges: int
    badge_completion_rate: float
    xp_rank: int | None = None
    total_participants: int


class InitializeResponse(BaseModel):
    created: bool


# --- Activity ---


class SolveRequest(BaseModel):
    problem_id: str = Field(min_length=1, max_length=128)
    difficulty: Literal["Easy", "Medium", "Hard"]
    pattern_name: str | None = Field(default=None, max_length=128)


class UnsolveRequest(BaseModel):
    problem_id: str = Field(min_length=1, max_length=128)
    pattern_name: str | None = Field(default=None, max_length=128)


class SolveResponse(BaseModel):
    xp_gained: int
    total_xp: int
    leveled_up: bool
    new_level: int | None = None
    badges_unlocked: list[UnlockedBadge]
    current_streak: int
    longest_streak: int


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    last_solved_at: datetime | None = None


class PatternCompleteRequest(BaseModel):
    pattern_name: str = Field(min_length=1, max_length=128)


class PatternCompleteResponse(BaseModel):
    patterns_completed: int
    recorded: bool
    badges_unlocked: list[UnlockedBadge]
