"""
Unit tests for the leveling rules and XP formulas.
"""

import pytest

from logic.errors import InvalidProgressionInput
from logic.progression import (
    LEVEL_TITLES,
    challenge_xp,
    game_xp,
    lesson_xp,
    level_for_xp,
    title_for_level,
)


class TestLevelForXP:
    """Every 100 XP is a level, from 1 up to 100."""

    @pytest.mark.parametrize(
        "xp, level",
        [(0, 1), (99, 1), (100, 2), (250, 3), (9899, 99), (9900, 100), (9999, 100), (10**6, 100)],
    )
    def test_boundaries(self, xp, level):
        assert level_for_xp(xp) == level

    def test_range_and_monotonic(self):
        previous = level_for_xp(0)
        for xp in range(0, 12000, 7):
            level = level_for_xp(xp)
            assert 1 <= level <= 100
            assert level >= previous
            previous = level


class TestTitleForLevel:
    @pytest.mark.parametrize(
        "level, title",
        [
            (1, "Beginner"),
            (4, "Beginner"),
            (5, "Apprentice"),
            (9, "Apprentice"),
            (10, "Student"),
            (19, "Student"),
            (20, "Scholar"),
            (29, "Scholar"),
            (30, "Expert"),
            (49, "Expert"),
            (50, "Master"),
            (74, "Master"),
            (75, "Grandmaster"),
            (99, "Grandmaster"),
            (100, "Legend"),
        ],
    )
    def test_table(self, level, title):
        assert title_for_level(level) == title

    def test_every_threshold_resolves_to_its_own_title(self):
        for threshold, title in LEVEL_TITLES:
            assert title_for_level(threshold) == title

    def test_title_is_pure_function_of_xp(self):
        for xp in (0, 450, 2999, 7600, 50000):
            assert title_for_level(level_for_xp(xp)) == title_for_level(level_for_xp(xp))


class TestChallengeXP:
    def test_points_awarded_as_is(self):
        assert challenge_xp(25) == 25
        assert challenge_xp(0) == 0

    def test_negative_points_rejected(self):
        with pytest.raises(InvalidProgressionInput):
            challenge_xp(-5)


class TestGameXP:
    def test_half_score_fast_finish(self):
        # 10 base + floor(0.5 * 20) + (10 - 0)
        assert game_xp(score=50, max_score=100, time_spent_seconds=30) == 30

    def test_perfect_score_caps_performance_bonus(self):
        assert game_xp(score=100, max_score=100, time_spent_seconds=0) == 40

    def test_time_bonus_drops_per_started_minute(self):
        assert game_xp(score=0, max_score=100, time_spent_seconds=59) == 20
        assert game_xp(score=0, max_score=100, time_spent_seconds=60) == 19
        assert game_xp(score=0, max_score=100, time_spent_seconds=185) == 17

    def test_time_bonus_never_negative(self):
        assert game_xp(score=0, max_score=100, time_spent_seconds=3600) == 10

    def test_performance_bonus_is_floored(self):
        # 1/3 * 20 = 6.67
        assert game_xp(score=1, max_score=3, time_spent_seconds=600) == 16

    @pytest.mark.parametrize("max_score", [0, -10])
    def test_non_positive_max_score_rejected(self, max_score):
        with pytest.raises(InvalidProgressionInput) as exc_info:
            game_xp(score=10, max_score=max_score, time_spent_seconds=10)
        assert exc_info.value.details == {"max_score": max_score}

    def test_negative_score_rejected(self):
        with pytest.raises(InvalidProgressionInput):
            game_xp(score=-1, max_score=10, time_spent_seconds=10)

    def test_score_above_max_rejected(self):
        with pytest.raises(InvalidProgressionInput) as exc_info:
            game_xp(score=150, max_score=100, time_spent_seconds=10)
        assert exc_info.value.details == {"score": 150, "max_score": 100}


class TestLessonXP:
    @pytest.mark.parametrize(
        "minutes, xp",
        [(0, 25), (10, 31), (15, 35), (20, 38), (30, 45), (37, 49), (38, 50), (90, 50)],
    )
    def test_duration_bonus(self, minutes, xp):
        assert lesson_xp(minutes) == xp

    def test_negative_duration_rejected(self):
        with pytest.raises(InvalidProgressionInput):
            lesson_xp(-1)
