"""Badge seed data — the default QuestCoder badge catalog."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questcoder.db.models import Badge
from questcoder.gamification.badge_service import CRITERIA_TYPES

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    # Milestones
    {
        "slug": "first_steps",
        "name": "First Steps",
        "description": "Solve your first problem",
        "category": "milestone",
        "rarity": "common",
        "xp_reward": 50,
        "criteria_type": "problems_solved",
        "criteria_value": 1,
        "criteria_config": {},
        "icon_url": "/badges/first-steps.svg",
        "sort_order": 1,
    },
    {
        "slug": "problem_solver",
        "name": "Problem Solver",
        "description": "Solve 10 problems",
        "category": "achievement",
        "rarity": "common",
        "xp_reward": 100,
        "criteria_type": "problems_solved",
        "criteria_value": 10,
        "criteria_config": {},
        "icon_url": "/badges/problem-solver.svg",
        "sort_order": 2,
    },
    {
        "slug": "pattern_master",
        "name": "Pattern Master",
        "description": "Complete your first pattern",
        "category": "milestone",
        "rarity": "uncommon",
        "xp_reward": 200,
        "criteria_type": "patterns_completed",
        "criteria_value": 1,
        "criteria_config": {},
        "icon_url": "/badges/pattern-master.svg",
        "sort_order": 3,
    },
    # Streaks
    {
        "slug": "streak_keeper",
        "name": "Streak Keeper",
        "description": "Maintain a 7-day solving streak",
        "category": "achievement",
        "rarity": "uncommon",
        "xp_reward": 150,
        "criteria_type": "streak_days",
        "criteria_value": 7,
        "criteria_config": {},
        "icon_url": "/badges/streak-keeper.svg",
        "sort_order": 4,
    },
    {
        "slug": "speed_demon",
        "name": "Speed Demon",
        "description": "Solve 10 problems in a single day",
        "category": "achievement",
        "rarity": "rare",
        "xp_reward": 300,
        "criteria_type": "daily_problems",
        "criteria_value": 10,
        "criteria_config": {},
        "icon_url": "/badges/speed-demon.svg",
        "sort_order": 5,
    },
    {
        "slug": "difficulty_climber",
        "name": "Difficulty Climber",
        "description": "Solve problems of all difficulty levels",
        "category": "achievement",
        "rarity": "uncommon",
        "xp_reward": 250,
        "criteria_type": "problems_solved",
        "criteria_value": 3,
        "criteria_config": {"require_all_difficulties": True},
        "icon_url": "/badges/difficulty-climber.svg",
        "sort_order": 6,
    },
    {
        "slug": "centurion",
        "name": "Centurion",
        "description": "Solve 100 problems",
        "category": "milestone",
        "rarity": "rare",
        "xp_reward": 500,
        "criteria_type": "problems_solved",
        "criteria_value": 100,
        "criteria_config": {},
        "icon_url": "/badges/centurion.svg",
        "sort_order": 7,
    },
    # Difficulty
    {
        "slug": "array_specialist",
        "name": "Array Specialist",
        "description": "Solve 20 Easy problems",
        "category": "achievement",
        "rarity": "common",
        "xp_reward": 200,
        "criteria_type": "difficulty_solved",
        "criteria_value": 20,
        "criteria_config": {"difficulty": "Easy"},
        "icon_url": "/badges/array-specialist.svg",
        "sort_order": 8,
    },
    {
        "slug": "algorithm_expert",
        "name": "Algorithm Expert",
        "description": "Solve 15 Hard problems",
        "category": "achievement",
        "rarity": "epic",
        "xp_reward": 750,
        "criteria_type": "difficulty_solved",
        "criteria_value": 15,
        "criteria_config": {"difficulty": "Hard"},
        "icon_url": "/badges/algorithm-expert.svg",
        "sort_order": 9,
    },
    {
        "slug": "dedication",
        "name": "Dedication",
        "description": "Maintain a 30-day streak",
        "category": "milestone",
        "rarity": "epic",
        "xp_reward": 1000,
        "criteria_type": "streak_days",
        "criteria_value": 30,
        "criteria_config": {},
        "icon_url": "/badges/dedication.svg",
        "sort_order": 10,
    },
    # Levels
    {
        "slug": "level_achiever",
        "name": "Level Achiever",
        "description": "Reach level 10",
        "category": "milestone",
        "rarity": "rare",
        "xp_reward": 500,
        "criteria_type": "level_reached",
        "criteria_value": 10,
        "criteria_config": {},
        "icon_url": "/badges/level-achiever.svg",
        "sort_order": 11,
    },
    {
        "slug": "master_coder",
        "name": "Master Coder",
        "description": "Reach level 25",
        "category": "milestone",
        "rarity": "legendary",
        "xp_reward": 1500,
        "criteria_type": "level_reached",
        "criteria_value": 25,
        "criteria_config": {},
        "icon_url": "/badges/master-coder.svg",
        "sort_order": 12,
    },
]


async def seed_badges(db: AsyncSession, catalog: list[dict] | None = None) -> int:
    """Insert or refresh every catalog badge by slug. Returns number of badges seeded.

    Runs on every startup; existing rows keep their id (and therefore their
    unlocks) and only have their definition fields updated. A definition with
    an unknown criteria type raises ValueError before anything is written.
    """
    if catalog is None:
        catalog = BADGE_SEED_DATA

    for badge_data in catalog:
        if badge_data["criteria_type"] not in CRITERIA_TYPES:
            raise ValueError(
                f"Badge {badge_data['slug']!r} has unknown criteria type {badge_data['criteria_type']!r}"
            )

    result = await db.execute(select(Badge))
    existing = {b.slug: b for b in result.scalars()}

    now = datetime.now(timezone.utc)
    seeded = 0
    for badge_data in catalog:
        badge = existing.get(badge_data["slug"])
        if badge is None:
            db.add(Badge(**badge_data, is_active=True, created_at=now))
        else:
            for field, value in badge_data.items():
                setattr(badge, field, value)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded
