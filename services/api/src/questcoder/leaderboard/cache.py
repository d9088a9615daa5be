"""In-process TTL cache for computed leaderboards.

Staleness up to the TTL is acceptable; writers that change XP, solve counts or
streaks call ``clear(<board>)`` after committing.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class _Entry:
    value: Any
    expires_at: float


def make_cache_key(board: str, filters: dict[str, Any]) -> str:
    """Build a key from the board name and a canonical JSON rendering of the filters."""
    return f"{board}_leaderboard:{json.dumps(filters, sort_keys=True, default=str)}"


class LeaderboardCache:
    """Dict keyed by filter signature, entries expire ``ttl_seconds`` after being set."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + self.ttl_seconds)

    def clear(self, pattern: str | None = None) -> int:
        """Drop every key containing ``pattern`` (or all keys). Returns number dropped."""
        if pattern is None:
            dropped = len(self._entries)
            self._entries.clear()
        else:
            keys = [k for k in self._entries if pattern in k]
            for k in keys:
                del self._entries[k]
            dropped = len(keys)
        if dropped:
            logger.info("Leaderboard cache cleared: pattern=%s dropped=%d", pattern or "*", dropped)
        return dropped


# Global singleton
leaderboard_cache = LeaderboardCache()


def invalidate_boards(*boards: str) -> int:
    """Clear cached pages and rank lookups for the named boards (xp, problems, streak, group)."""
    return sum(leaderboard_cache.clear(f"{board}_leaderboard") for board in boards)
