"""Quadratic level curve.

Level n starts at (n - 1)^2 * base XP, so with the default base of 100:
level 1 covers 0-99 XP, level 2 covers 100-399, level 3 covers 400-899, ...
These values MUST match the dashboard's XpProgressBar / LevelIndicator.
"""

from __future__ import annotations

import math

from questcoder.config import get_settings


def _base_xp(base_xp: int | None) -> int:
    return base_xp if base_xp is not None else get_settings().level_xp_base


def calculate_level(total_xp: int, base_xp: int | None = None) -> int:
    """Return floor(sqrt(total_xp / base)) + 1, or 1 for non-positive XP."""
    if total_xp <= 0:
        return 1
    base = _base_xp(base_xp)
    # n*n <= xp // base  <=>  n*n*base <= xp
    return math.isqrt(total_xp // base) + 1


def xp_for_level(level: int, base_xp: int | None = None) -> int:
    """Cumulative XP at which ``level`` starts."""
    if level <= 1:
        return 0
    base = _base_xp(base_xp)
    return (level - 1) * (level - 1) * base


def compute_level(total_xp: int, base_xp: int | None = None) -> dict:
    """Compute level and progress info from total XP."""
    level = calculate_level(total_xp, base_xp)
    level_start = xp_for_level(level, base_xp)
    next_level_start = xp_for_level(level + 1, base_xp)

    xp_into_level = max(0, total_xp - level_start)
    xp_for_next = next_level_start - level_start
    percentage = min(100.0, max(0.0, xp_into_level / xp_for_next * 100))

    return {
        "level": level,
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_next,
        "next_level": level + 1,
        "next_level_xp": next_level_start,
        "percentage": round(percentage, 2),
    }


def level_table(up_to: int, current_level: int, base_xp: int | None = None) -> list[dict]:
    """Level rows 1..up_to with unlock flags relative to ``current_level``."""
    return [
        {
            "level": level,
            "xp_required": xp_for_level(level, base_xp),
            "is_unlocked": level <= current_level,
            "is_current": level == current_level,
        }
        for level in range(1, up_to + 1)
    ]
