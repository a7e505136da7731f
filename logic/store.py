# backend/logic/store.py
"""
Persistence port for user statistics.

``StatisticsStore`` wraps one SQLAlchemy session. Increments are expressed
server-side (``total_xp = total_xp + :delta``) and read back with RETURNING
in the same statement, so two concurrent events for one user cannot both
start from the same snapshot. The row lock taken by the UPDATE is held until
the caller commits the session.
"""

from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from logic.errors import InvalidProgressionInput, StatisticsNotFound, StoreUnavailable
from models.user_statistics import UserStatistics


COUNTER_FIELDS = ("challenges_completed", "games_played", "lessons_completed")

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True)
class StatisticsSnapshot:
    user_id: int
    total_xp: int
    level: int
    level_title: str
    challenges_completed: int
    games_played: int
    lessons_completed: int


_COLUMNS = (
    UserStatistics.user_id,
    UserStatistics.total_xp,
    UserStatistics.level,
    UserStatistics.level_title,
    UserStatistics.challenges_completed,
    UserStatistics.games_played,
    UserStatistics.lessons_completed,
)


def _snapshot(row):
    return StatisticsSnapshot(**row._mapping)


class StatisticsStore:
    def __init__(self, session):
        self.session = session

    def get_user_statistics(self, user_id: int) -> StatisticsSnapshot:
        try:
            row = self.session.execute(
                select(*_COLUMNS).where(UserStatistics.user_id == user_id)
            ).first()
        except SQLAlchemyError as e:
            raise StoreUnavailable("Failed to read user statistics", {"user_id": user_id}) from e

        if row is None:
            raise StatisticsNotFound(user_id)
        return _snapshot(row)

    def ensure_statistics(self, user_id: int) -> None:
        """Create the default row (0 XP, level 1, Beginner) if it is missing."""
        dialect = self.session.get_bind().dialect.name
        insert = _INSERTS.get(dialect)
        if insert is None:
            raise StoreUnavailable(
                "Unsupported database dialect for statistics upsert", {"dialect": dialect}
            )

        stmt = insert(UserStatistics).values(user_id=user_id).on_conflict_do_nothing(
            index_elements=[UserStatistics.user_id]
        )
        try:
            self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailable("Failed to create user statistics", {"user_id": user_id}) from e

    def increment_and_get(self, user_id: int, xp_delta: int, counter_field: str) -> StatisticsSnapshot:
        """Atomically add ``xp_delta`` XP and bump one counter, returning the new row."""
        if counter_field not in COUNTER_FIELDS:
            raise InvalidProgressionInput(
                "Unknown statistics counter", {"counter_field": counter_field}
            )

        counter = getattr(UserStatistics, counter_field)
        stmt = (
            update(UserStatistics)
            .where(UserStatistics.user_id == user_id)
            .values(
                {
                    UserStatistics.total_xp: UserStatistics.total_xp + xp_delta,
                    counter: counter + 1,
                }
            )
            .returning(*_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        try:
            row = self.session.execute(stmt).first()
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                "Failed to update user statistics",
                {"user_id": user_id, "xp_delta": xp_delta, "counter_field": counter_field},
            ) from e

        if row is None:
            raise StatisticsNotFound(user_id)
        return _snapshot(row)

    def set_level(self, user_id: int, level: int, title: str) -> bool:
        """
        Raise the stored level to ``level``. Never lowers it.

        Returns True when a row was promoted.
        """
        stmt = (
            update(UserStatistics)
            .where(UserStatistics.user_id == user_id, UserStatistics.level < level)
            .values(level=level, level_title=title)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailable(
                "Failed to update user level", {"user_id": user_id, "level": level}
            ) from e
        return result.rowcount > 0
