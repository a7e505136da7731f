# backend/logic/progression.py
"""
XP accrual and leveling rules, and the engine that applies them.

The rules are pure functions; ``ProgressionEngine`` orchestrates one
statistics update and one level-up check per event through a
``StatisticsStore``.
"""

import logging
import math
from dataclasses import dataclass

from logic.errors import InvalidProgressionInput, LevelRegressionDetected
from logic.store import StatisticsStore

logger = logging.getLogger(__name__)

XP_PER_LEVEL = 100
MAX_LEVEL = 100

GAME_BASE_XP = 10
GAME_PERFORMANCE_BONUS_MAX = 20
GAME_TIME_BONUS_MAX = 10

LESSON_BASE_XP = 25
LESSON_DURATION_BONUS_MAX = 25

# Ascending (minimum level, title)
LEVEL_TITLES = (
    (1, "Beginner"),
    (5, "Apprentice"),
    (10, "Student"),
    (20, "Scholar"),
    (30, "Expert"),
    (50, "Master"),
    (75, "Grandmaster"),
    (100, "Legend"),
)


def level_for_xp(xp: int) -> int:
    """Every 100 XP is one level, starting at 1 and capped at 100."""
    return min(int(xp) // XP_PER_LEVEL + 1, MAX_LEVEL)


def title_for_level(level: int) -> str:
    title = LEVEL_TITLES[0][1]
    for threshold, name in LEVEL_TITLES:
        if level >= threshold:
            title = name
    return title


# --------- XP formulas ---------

def challenge_xp(points: int) -> int:
    if points < 0:
        raise InvalidProgressionInput("Challenge points cannot be negative", {"points": points})
    return int(points)


def game_xp(score: int, max_score: int, time_spent_seconds: int) -> int:
    """
    10 base XP, up to 20 for the score ratio, and up to 10 for finishing
    within ten minutes (one point lost per started minute).
    """
    if max_score <= 0:
        raise InvalidProgressionInput("max_score must be positive", {"max_score": max_score})
    if score < 0:
        raise InvalidProgressionInput("score cannot be negative", {"score": score})
    if score > max_score:
        raise InvalidProgressionInput(
            "score cannot exceed max_score", {"score": score, "max_score": max_score}
        )
    if time_spent_seconds < 0:
        raise InvalidProgressionInput(
            "time_spent cannot be negative", {"time_spent_seconds": time_spent_seconds}
        )

    performance_bonus = math.floor(score / max_score * GAME_PERFORMANCE_BONUS_MAX)
    time_bonus = max(0, GAME_TIME_BONUS_MAX - time_spent_seconds // 60)
    return GAME_BASE_XP + performance_bonus + time_bonus


def lesson_xp(estimated_duration_minutes: int) -> int:
    if estimated_duration_minutes < 0:
        raise InvalidProgressionInput(
            "Lesson duration cannot be negative",
            {"estimated_duration_minutes": estimated_duration_minutes},
        )
    duration_bonus = min(estimated_duration_minutes / 15 * 10, LESSON_DURATION_BONUS_MAX)
    return int(LESSON_BASE_XP + duration_bonus)


@dataclass(frozen=True)
class ProgressionResult:
    user_id: int
    xp_awarded: int
    total_xp: int
    level: int
    level_title: str
    leveled_up: bool

    def to_dict(self):
        return {
            "xp_awarded": self.xp_awarded,
            "total_xp": self.total_xp,
            "level": self.level,
            "level_title": self.level_title,
            "leveled_up": self.leveled_up,
        }


class ProgressionEngine:
    """
    Applies accrual events to a user's statistics.

    The store's session defines the transaction: the increment, the counter
    bump and the level write are all part of it, and the caller commits or
    rolls back as one unit.
    """

    def __init__(self, store: StatisticsStore):
        self.store = store

    def apply_challenge_completion(self, user_id: int, points_earned: int) -> ProgressionResult:
        return self._apply(user_id, challenge_xp(points_earned), "challenges_completed")

    def apply_game_completion(
        self, user_id: int, score: int, max_score: int, time_spent_seconds: int
    ) -> ProgressionResult:
        return self._apply(user_id, game_xp(score, max_score, time_spent_seconds), "games_played")

    def apply_lesson_completion(self, user_id: int, estimated_duration_minutes: int) -> ProgressionResult:
        return self._apply(user_id, lesson_xp(estimated_duration_minutes), "lessons_completed")

    def _apply(self, user_id: int, xp_delta: int, counter_field: str) -> ProgressionResult:
        if xp_delta < 0:
            raise InvalidProgressionInput("XP delta cannot be negative", {"xp_delta": xp_delta})

        self.store.ensure_statistics(user_id)
        stats = self.store.increment_and_get(user_id, xp_delta, counter_field)

        level_old = stats.level
        level_new = level_for_xp(stats.total_xp)
        level = level_old
        title = stats.level_title
        leveled_up = False

        if level_new > level_old:
            new_title = title_for_level(level_new)
            leveled_up = self.store.set_level(user_id, level_new, new_title)
            if leveled_up:
                level, title = level_new, new_title
                logger.info(
                    "User leveled up",
                    extra={
                        "user_id": user_id,
                        "old_level": level_old,
                        "new_level": level_new,
                        "title": new_title,
                    },
                )
        elif level_new < level_old:
            anomaly = LevelRegressionDetected(user_id, level_old, level_new)
            logger.warning("%s", anomaly, extra=anomaly.details)

        return ProgressionResult(
            user_id=user_id,
            xp_awarded=xp_delta,
            total_xp=stats.total_xp,
            level=level,
            level_title=title,
            leveled_up=leveled_up,
        )
