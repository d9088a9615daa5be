"""Badge criteria evaluation — pure predicate tests (no database)."""

from types import SimpleNamespace

import pytest

from questcoder.gamification.badge_service import UserCounters, is_eligible, progress_percentage


def _badge(criteria_type: str, value: int, **config) -> SimpleNamespace:
    return SimpleNamespace(criteria_type=criteria_type, criteria_value=value, criteria_config=config)


def _counters(**overrides) -> UserCounters:
    base = {"has_progress": True}
    base.update(overrides)
    return UserCounters(**base)


class TestProblemsSolved:
    def test_threshold_met(self):
        assert is_eligible(_badge("problems_solved", 10), _counters(problems_solved=10))

    def test_threshold_not_met(self):
        assert not is_eligible(_badge("problems_solved", 10), _counters(problems_solved=9))

    def test_require_all_difficulties(self):
        badge = _badge("problems_solved", 3, require_all_difficulties=True)
        all_three = _counters(problems_solved=3, solved_by_difficulty={"Easy": 1, "Medium": 1, "Hard": 1})
        assert is_eligible(badge, all_three)

    def test_require_all_difficulties_ignores_count(self):
        """Plenty of solves but no Hard ones is not enough."""
        badge = _badge("problems_solved", 3, require_all_difficulties=True)
        missing_hard = _counters(problems_solved=50, solved_by_difficulty={"Easy": 30, "Medium": 20})
        assert not is_eligible(badge, missing_hard)


class TestOtherCriteria:
    def test_streak_days(self):
        assert is_eligible(_badge("streak_days", 7), _counters(current_streak=7))
        assert not is_eligible(_badge("streak_days", 7), _counters(current_streak=6))

    def test_xp_earned(self):
        assert is_eligible(_badge("xp_earned", 1000), _counters(total_xp=1000))
        assert not is_eligible(_badge("xp_earned", 1000), _counters(total_xp=999))

    def test_level_reached(self):
        assert is_eligible(_badge("level_reached", 10), _counters(level=11))
        assert not is_eligible(_badge("level_reached", 10), _counters(level=9))

    def test_patterns_completed(self):
        assert is_eligible(_badge("patterns_completed", 1), _counters(patterns_completed=1))
        assert not is_eligible(_badge("patterns_completed", 1), _counters(patterns_completed=0))

    def test_daily_problems(self):
        assert is_eligible(_badge("daily_problems", 10), _counters(solved_today=10))
        assert not is_eligible(_badge("daily_problems", 10), _counters(solved_today=9))

    def test_difficulty_solved(self):
        badge = _badge("difficulty_solved", 15, difficulty="Hard")
        assert is_eligible(badge, _counters(solved_by_difficulty={"Hard": 15}))
        assert not is_eligible(badge, _counters(solved_by_difficulty={"Hard": 14, "Easy": 100}))

    def test_difficulty_solved_without_target_never_eligible(self):
        badge = _badge("difficulty_solved", 0)
        assert not is_eligible(badge, _counters(solved_by_difficulty={"Easy": 5}))

    def test_unknown_criteria_never_eligible(self):
        assert not is_eligible(_badge("contest_won", 0), _counters(total_xp=10**6))

    def test_no_progress_never_eligible(self):
        """A user who has never been active can't earn even zero-threshold badges."""
        assert not is_eligible(_badge("xp_earned", 0), UserCounters())


class TestProgressPercentage:
    @pytest.mark.parametrize(
        ("criteria_type", "value", "counters", "expected"),
        [
            ("problems_solved", 10, {"problems_solved": 5}, 50),
            ("streak_days", 7, {"current_streak": 3}, 43),
            ("xp_earned", 1000, {"total_xp": 333}, 33),
            ("problems_solved", 10, {"problems_solved": 40}, 100),
        ],
    )
    def test_linear_criteria(self, criteria_type, value, counters, expected):
        badge = _badge(criteria_type, value)
        assert progress_percentage(badge, _counters(**counters)) == expected

    def test_non_linear_criteria_report_zero(self):
        assert progress_percentage(_badge("level_reached", 10), _counters(level=9)) == 0
        assert progress_percentage(_badge("daily_problems", 10), _counters(solved_today=9)) == 0

    def test_zero_threshold_is_complete(self):
        assert progress_percentage(_badge("problems_solved", 0), _counters()) == 100
