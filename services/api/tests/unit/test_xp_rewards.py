"""Base XP per difficulty and the capped streak multiplier."""

import pytest

from questcoder.errors import ValidationError
from questcoder.gamification.xp_service import base_xp_for, calculate_streak_bonus, calculate_xp_reward


class TestStreakBonus:
    @pytest.mark.parametrize(
        ("streak", "tier"),
        [
            (0, 0),
            (2, 0),
            (3, 1),
            (6, 1),
            (7, 3),
            (13, 3),
            (14, 5),
            (29, 5),
            (30, 10),
            (365, 10),
        ],
    )
    def test_tiers(self, streak, tier):
        assert calculate_streak_bonus(streak) == tier


class TestBaseXP:
    def test_defaults(self):
        assert base_xp_for("Easy") == 10
        assert base_xp_for("Medium") == 25
        assert base_xp_for("Hard") == 50

    def test_unknown_difficulty_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            base_xp_for("Impossible")
        assert exc_info.value.status_code == 400

    def test_difficulty_is_case_sensitive(self):
        with pytest.raises(ValidationError):
            base_xp_for("easy")


class TestXPReward:
    def test_no_bonus(self):
        assert calculate_xp_reward("Easy") == 10
        assert calculate_xp_reward("Medium", 0) == 25
        assert calculate_xp_reward("Hard", 0) == 50

    def test_three_day_streak_adds_ten_percent(self):
        assert calculate_xp_reward("Medium", calculate_streak_bonus(3)) == 27  # floor(27.5)

    def test_week_streak(self):
        assert calculate_xp_reward("Hard", calculate_streak_bonus(7)) == 65

    def test_fortnight_streak(self):
        assert calculate_xp_reward("Easy", calculate_streak_bonus(14)) == 15

    def test_thirty_day_streak_doubles(self):
        assert calculate_xp_reward("Hard", calculate_streak_bonus(30)) == 100

    def test_multiplier_capped_at_two(self):
        assert calculate_xp_reward("Hard", 25) == 100

    def test_negative_bonus_treated_as_zero(self):
        assert calculate_xp_reward("Easy", -5) == 10
