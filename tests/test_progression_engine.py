"""
Tests for ProgressionEngine and StatisticsStore against a real SQLite database.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from logic.errors import InvalidProgressionInput, StatisticsNotFound, StoreUnavailable
from logic.progression import ProgressionEngine, level_for_xp
from logic.store import StatisticsStore
from models.user_statistics import UserStatistics


class TestStatisticsStore:
    def test_missing_row_is_not_found(self, store, make_user):
        user_id = make_user()
        with pytest.raises(StatisticsNotFound):
            store.get_user_statistics(user_id)

    def test_ensure_statistics_creates_defaults_once(self, store, session, make_user):
        user_id = make_user()
        store.ensure_statistics(user_id)
        store.ensure_statistics(user_id)
        session.commit()

        stats = store.get_user_statistics(user_id)
        assert (stats.total_xp, stats.level, stats.level_title) == (0, 1, "Beginner")
        assert session.query(UserStatistics).count() == 1

    def test_increment_and_get_returns_post_increment_row(self, store, make_user):
        user_id = make_user(with_statistics=True)
        stats = store.increment_and_get(user_id, 40, "games_played")
        assert stats.total_xp == 40
        assert stats.games_played == 1
        assert stats.challenges_completed == 0

    def test_unknown_counter_rejected(self, store, make_user):
        user_id = make_user(with_statistics=True)
        with pytest.raises(InvalidProgressionInput):
            store.increment_and_get(user_id, 10, "total_xp")

    def test_increment_without_row_is_not_found(self, store, make_user):
        user_id = make_user()
        with pytest.raises(StatisticsNotFound):
            store.increment_and_get(user_id, 10, "games_played")

    def test_set_level_never_lowers(self, store, session, make_user):
        user_id = make_user(level=12, level_title="Student")
        assert store.set_level(user_id, 3, "Beginner") is False
        assert store.set_level(user_id, 20, "Scholar") is True
        session.commit()
        stats = store.get_user_statistics(user_id)
        assert (stats.level, stats.level_title) == (20, "Scholar")

    def test_driver_failure_becomes_store_unavailable(self):
        session = MagicMock()
        session.execute.side_effect = OperationalError("UPDATE user_statistics", {}, Exception("down"))
        with pytest.raises(StoreUnavailable) as exc_info:
            StatisticsStore(session).increment_and_get(1, 10, "games_played")
        assert isinstance(exc_info.value.__cause__, OperationalError)

    def test_unsupported_dialect_refuses_to_create_rows(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "mysql"
        with pytest.raises(StoreUnavailable) as exc_info:
            StatisticsStore(session).ensure_statistics(1)
        assert exc_info.value.details == {"dialect": "mysql"}
        session.execute.assert_not_called()
        session.add.assert_not_called()


class TestProgressionEngine:
    def test_first_event_auto_creates_statistics(self, progression, session, make_user):
        user_id = make_user()
        result = progression.apply_lesson_completion(user_id, 15)
        session.commit()

        assert result.xp_awarded == 35
        assert (result.total_xp, result.level, result.level_title) == (35, 1, "Beginner")
        assert result.leveled_up is False
        assert session.get(UserStatistics, user_id).lessons_completed == 1

    def test_game_completion(self, progression, make_user):
        user_id = make_user(with_statistics=True)
        result = progression.apply_game_completion(user_id, score=50, max_score=100, time_spent_seconds=30)
        assert result.xp_awarded == 30
        assert result.total_xp == 30

    def test_each_event_bumps_its_own_counter(self, progression, store, make_user):
        user_id = make_user(with_statistics=True)
        progression.apply_challenge_completion(user_id, 10)
        progression.apply_challenge_completion(user_id, 10)
        progression.apply_game_completion(user_id, 1, 1, 0)
        progression.apply_lesson_completion(user_id, 0)

        stats = store.get_user_statistics(user_id)
        assert stats.challenges_completed == 2
        assert stats.games_played == 1
        assert stats.lessons_completed == 1
        assert stats.total_xp == 10 + 10 + 40 + 25

    def test_level_up_persists_level_and_title(self, progression, store, make_user, caplog):
        user_id = make_user(total_xp=390, level=4, level_title="Beginner")

        with caplog.at_level(logging.INFO, logger="logic.progression"):
            result = progression.apply_challenge_completion(user_id, 20)

        assert result.leveled_up is True
        assert (result.total_xp, result.level, result.level_title) == (410, 5, "Apprentice")
        stats = store.get_user_statistics(user_id)
        assert (stats.level, stats.level_title) == (5, "Apprentice")
        assert any(r.getMessage() == "User leveled up" and r.new_level == 5 for r in caplog.records)

    def test_level_is_capped_at_legend(self, progression, store, make_user):
        user_id = make_user(total_xp=9950, level=99, level_title="Grandmaster")

        result = progression.apply_challenge_completion(user_id, 100)
        assert (result.level, result.level_title) == (100, "Legend")

        result = progression.apply_challenge_completion(user_id, 500)
        assert result.total_xp == 10550
        assert (result.level, result.leveled_up) == (100, False)
        assert store.get_user_statistics(user_id).level == 100

    def test_level_regression_is_logged_not_applied(self, progression, store, make_user, caplog):
        user_id = make_user(total_xp=0, level=10, level_title="Student")

        with caplog.at_level(logging.WARNING, logger="logic.progression"):
            result = progression.apply_challenge_completion(user_id, 10)

        assert (result.level, result.level_title, result.leveled_up) == (10, "Student", False)
        assert store.get_user_statistics(user_id).level == 10
        assert any("LevelRegressionDetected" in r.getMessage() for r in caplog.records)

    def test_invalid_input_writes_nothing(self, progression, session, make_user):
        user_id = make_user()
        with pytest.raises(InvalidProgressionInput):
            progression.apply_game_completion(user_id, score=5, max_score=0, time_spent_seconds=10)
        assert session.get(UserStatistics, user_id) is None

    def test_negative_points_rejected(self, progression, make_user):
        user_id = make_user(with_statistics=True)
        with pytest.raises(InvalidProgressionInput):
            progression.apply_challenge_completion(user_id, -10)

    def test_rollback_discards_the_whole_update(self, progression, session, store, make_user):
        user_id = make_user(total_xp=95, level=1, level_title="Beginner")
        progression.apply_challenge_completion(user_id, 10)
        session.rollback()

        stats = store.get_user_statistics(user_id)
        assert (stats.total_xp, stats.level, stats.challenges_completed) == (95, 1, 0)

    def test_level_never_decreases_across_a_sequence(self, progression, make_user):
        user_id = make_user(with_statistics=True)
        levels = []
        for points in (0, 30, 70, 5, 150, 0, 400, 1000, 2):
            levels.append(progression.apply_challenge_completion(user_id, points).level)
        assert levels == sorted(levels)


class TestConcurrentAccrual:
    def test_no_lost_updates(self, session_factory, make_user):
        user_id = make_user(with_statistics=True)
        events, points = 12, 30

        def award():
            with session_factory() as session:
                ProgressionEngine(StatisticsStore(session)).apply_challenge_completion(user_id, points)
                session.commit()

        with ThreadPoolExecutor(max_workers=6) as pool:
            for future in [pool.submit(award) for _ in range(events)]:
                future.result()

        with session_factory() as session:
            stats = StatisticsStore(session).get_user_statistics(user_id)
        assert stats.total_xp == events * points
        assert stats.challenges_completed == events
        assert stats.level == level_for_xp(events * points)
        assert stats.level_title == "Beginner"

    def test_concurrent_first_events_share_one_row(self, session_factory, make_user):
        user_id = make_user()

        def award():
            with session_factory() as session:
                ProgressionEngine(StatisticsStore(session)).apply_lesson_completion(user_id, 15)
                session.commit()

        with ThreadPoolExecutor(max_workers=4) as pool:
            for future in [pool.submit(award) for _ in range(4)]:
                future.result()

        with session_factory() as session:
            stats = StatisticsStore(session).get_user_statistics(user_id)
        assert (stats.total_xp, stats.lessons_completed, stats.level) == (140, 4, 2)
