"""Leaderboard cache tests (fake clock, no database)."""

from questcoder.leaderboard.cache import LeaderboardCache, invalidate_boards, leaderboard_cache, make_cache_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    def test_filter_order_does_not_matter(self):
        a = make_cache_key("xp", {"timeframe": "weekly", "limit": 10, "offset": 0})
        b = make_cache_key("xp", {"offset": 0, "limit": 10, "timeframe": "weekly"})
        assert a == b

    def test_board_name_prefix(self):
        assert make_cache_key("streak", {}).startswith("streak_leaderboard")

    def test_different_filters_differ(self):
        assert make_cache_key("xp", {"offset": 0}) != make_cache_key("xp", {"offset": 10})


class TestLeaderboardCache:
    def test_miss_returns_none(self):
        assert LeaderboardCache().get("nope") is None

    def test_hit_within_ttl(self):
        clock = FakeClock()
        cache = LeaderboardCache(ttl_seconds=300, clock=clock)
        cache.set("k", {"entries": []})
        clock.now += 299
        assert cache.get("k") == {"entries": []}

    def test_expires_at_ttl(self):
        clock = FakeClock()
        cache = LeaderboardCache(ttl_seconds=300, clock=clock)
        cache.set("k", 1)
        clock.now += 300
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_set_refreshes_expiry(self):
        clock = FakeClock()
        cache = LeaderboardCache(ttl_seconds=300, clock=clock)
        cache.set("k", 1)
        clock.now += 200
        cache.set("k", 2)
        clock.now += 200
        assert cache.get("k") == 2

    def test_falsy_values_are_cached(self):
        cache = LeaderboardCache()
        cache.set("rank", 0)
        assert cache.get("rank") == 0

    def test_clear_by_pattern(self):
        cache = LeaderboardCache()
        cache.set(make_cache_key("xp", {"offset": 0}), 1)
        cache.set(make_cache_key("xp", {"offset": 10}), 2)
        cache.set(make_cache_key("streak", {"offset": 0}), 3)

        assert cache.clear("xp_leaderboard") == 2
        assert len(cache) == 1
        assert cache.get(make_cache_key("streak", {"offset": 0})) == 3

    def test_clear_all(self):
        cache = LeaderboardCache()
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.clear() == 2
        assert len(cache) == 0


class TestInvalidateBoards:
    def test_only_named_boards_dropped(self):
        leaderboard_cache.set(make_cache_key("xp", {}), 1)
        leaderboard_cache.set(make_cache_key("problems", {}), 2)
        leaderboard_cache.set(make_cache_key("streak", {}), 3)

        assert invalidate_boards("xp", "problems") == 2
        assert leaderboard_cache.get(make_cache_key("streak", {})) == 3
