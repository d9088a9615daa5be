"""XP service tests — grants, idempotency, level-up detection and history."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from questcoder.db.models import LevelHistory, Notification, UserGamification, XPLedger
from questcoder.gamification.levels import calculate_level
from questcoder.gamification.xp_service import (
    add_xp,
    get_or_create_gamification,
    get_user_gamification_stats,
    get_xp_history,
    initialize_user_gamification,
    process_xp_gain,
)
from questcoder.leaderboard.cache import leaderboard_cache, make_cache_key
from questcoder.notifications.push import commit_and_publish


class TestGetOrCreateGamification:
    @pytest.mark.asyncio
    async def test_creates_new_record(self, db_session, user):
        gam = await get_or_create_gamification(db_session, user.id)
        assert gam.total_xp == 0
        assert gam.current_level == 1
        assert gam.badges_earned == 0

    @pytest.mark.asyncio
    async def test_returns_existing_record(self, db_session, user):
        gam1 = await get_or_create_gamification(db_session, user.id)
        gam1.total_xp = 500
        await db_session.flush()

        gam2 = await get_or_create_gamification(db_session, user.id)
        assert gam2.total_xp == 500


class TestAddXP:
    @pytest.mark.asyncio
    async def test_grants_and_writes_ledger(self, db_session, user):
        result = await add_xp(db_session, user.id, 50, source="problem", source_id="two-sum")
        assert result["granted"] is True
        assert result["total_xp"] == 50
        assert result["leveled_up"] is False

        ledger = (await db_session.execute(
            select(XPLedger).where(XPLedger.user_id == user.id)
        )).scalars().all()
        assert len(ledger) == 1
        assert ledger[0].amount == 50
        assert ledger[0].source_id == "two-sum"

    @pytest.mark.asyncio
    async def test_sets_last_xp_gained_at(self, db_session, user):
        now = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
        await add_xp(db_session, user.id, 10, source="problem", now=now)
        gam = await get_or_create_gamification(db_session, user.id)
        assert gam.last_xp_gained_at == now

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -10])
    async def test_non_positive_amount_is_noop(self, db_session, user, amount):
        result = await add_xp(db_session, user.id, amount, source="problem")
        assert result["granted"] is False
        assert result["total_xp"] == 0

        count = (await db_session.execute(select(func.count()).select_from(XPLedger))).scalar_one()
        assert count == 0

    @pytest.mark.asyncio
    async def test_duplicate_idempotency_key_is_noop(self, db_session, user):
        first = await add_xp(db_session, user.id, 100, source="badge", idempotency_key="badge:x:1")
        second = await add_xp(db_session, user.id, 100, source="badge", idempotency_key="badge:x:1")
        assert first["granted"] is True
        assert second["granted"] is False
        assert second["total_xp"] == 100

    @pytest.mark.asyncio
    async def test_level_up_detected(self, db_session, user):
        await add_xp(db_session, user.id, 90, source="problem")
        result = await add_xp(db_session, user.id, 20, source="problem")
        assert result["leveled_up"] is True
        assert result["old_level"] == 1
        assert result["new_level"] == 2

    @pytest.mark.asyncio
    async def test_level_up_appends_history_and_notification(self, db_session, user):
        await add_xp(db_session, user.id, 450, source="problem")  # 1 -> 3

        history = (await db_session.execute(
            select(LevelHistory).where(LevelHistory.user_id == user.id)
        )).scalars().all()
        assert [(h.level, h.xp_at_achievement) for h in history] == [(3, 450)]

        notification = (await db_session.execute(
            select(Notification).where(Notification.user_id == user.id)
        )).scalar_one()
        assert notification.subtype == "level_up"

    @pytest.mark.asyncio
    async def test_level_invariant_holds_after_each_grant(self, db_session, user):
        for amount in [7, 93, 1, 299, 500, 1234, 5000]:
            result = await add_xp(db_session, user.id, amount, source="problem")
            assert result["new_level"] == calculate_level(result["total_xp"])

    @pytest.mark.asyncio
    async def test_events_wait_for_commit(self, db_session, user, fake_redis):
        await add_xp(db_session, user.id, 150, source="problem")
        assert fake_redis.published == []

        await commit_and_publish(db_session, fake_redis)
        assert fake_redis.channels().count("pubsub:xp_gained") == 1
        assert "pubsub:level_up" in fake_redis.channels()
        assert f"ws:user:{user.id}" in fake_redis.channels()

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_grant(self, db_session, user):
        class BrokenRedis:
            async def publish(self, *_args):
                raise ConnectionError("redis down")

        result = await add_xp(db_session, user.id, 150, source="problem")
        await commit_and_publish(db_session, BrokenRedis())
        assert result["granted"] is True
        assert result["new_level"] == 2

        gam = await get_or_create_gamification(db_session, user.id)
        assert gam.total_xp == 150


class TestProcessXPGain:
    @pytest.mark.asyncio
    async def test_problem_xp_only_without_catalog(self, db_session, user):
        result = await process_xp_gain(db_session, None, user.id, "Medium", current_streak=0)
        assert result["xp_gained"] == 25
        assert result["total_xp"] == 25
        assert result["leveled_up"] is False
        assert result["new_level"] is None
        assert result["badges_unlocked"] == []

    @pytest.mark.asyncio
    async def test_streak_bonus_applied(self, db_session, user):
        result = await process_xp_gain(db_session, None, user.id, "Hard", current_streak=30)
        assert result["xp_gained"] == 100

    @pytest.mark.asyncio
    async def test_commits(self, db_session, user):
        await process_xp_gain(db_session, None, user.id, "Easy")
        await db_session.rollback()

        gam = (await db_session.execute(
            select(UserGamification).where(UserGamification.user_id == user.id)
        )).scalar_one()
        assert gam.total_xp == 10

    @pytest.mark.asyncio
    async def test_invalidates_solve_boards(self, db_session, user):
        boards = ("xp", "problems", "streak", "group")
        for board in boards:
            leaderboard_cache.set(make_cache_key(board, {"offset": 0}), {"entries": []})

        await process_xp_gain(db_session, None, user.id, "Easy")

        for board in boards:
            assert leaderboard_cache.get(make_cache_key(board, {"offset": 0})) is None

    @pytest.mark.asyncio
    async def test_publishes_after_commit(self, db_session, user, fake_redis):
        await process_xp_gain(db_session, fake_redis, user.id, "Hard")
        assert fake_redis.channels() == [
            "pubsub:xp_gained",
            "pubsub:leaderboard_update",
        ]

    @pytest.mark.asyncio
    async def test_failed_commit_publishes_nothing(self, db_session, user, fake_redis, monkeypatch):
        user_id = user.id

        async def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db_session, "commit", failing_commit)
        with pytest.raises(OperationalError):
            await process_xp_gain(db_session, fake_redis, user_id, "Hard")

        assert fake_redis.published == []
        assert db_session.info.get("questcoder.pending_events") is None

        monkeypatch.undo()
        await db_session.rollback()
        rows = (await db_session.execute(
            select(func.count()).select_from(UserGamification).where(UserGamification.user_id == user_id)
        )).scalar_one()
        assert rows == 0


class TestStats:
    @pytest.mark.asyncio
    async def test_stats_for_new_user(self, db_session, user):
        stats = await get_user_gamification_stats(db_session, user.id)
        assert stats["total_xp"] == 0
        assert stats["current_level"] == 1
        assert stats["xp_progress"] == {"current": 0, "required": 100, "percentage": 0.0}
        assert stats["unlocked_badges"] == []
        assert stats["level_history"] == []

    @pytest.mark.asyncio
    async def test_stats_progress(self, db_session, user):
        await add_xp(db_session, user.id, 250, source="problem")
        stats = await get_user_gamification_stats(db_session, user.id)
        assert stats["current_level"] == 2
        assert stats["xp_progress"] == {"current": 150, "required": 300, "percentage": 50.0}
        assert [h["level"] for h in stats["level_history"]] == [2]

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, db_session, user):
        assert await initialize_user_gamification(db_session, user.id) is True
        assert await initialize_user_gamification(db_session, user.id) is False


class TestXPHistory:
    @pytest.mark.asyncio
    async def test_newest_first_and_paginated(self, db_session, user):
        for i in range(5):
            await add_xp(
                db_session, user.id, 10 + i, source="problem",
                now=datetime(2026, 3, 1 + i, tzinfo=timezone.utc),
            )
        await db_session.commit()

        page1 = await get_xp_history(db_session, user.id, page=1, per_page=2)
        assert page1["total"] == 5
        assert [e["amount"] for e in page1["entries"]] == [14, 13]

        page3 = await get_xp_history(db_session, user.id, page=3, per_page=2)
        assert [e["amount"] for e in page3["entries"]] == [10]
