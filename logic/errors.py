"""
Error kinds raised by the progression engine.

Every error carries a human-readable ``message``, a ``details`` dict with
structured context, and a stable ``error_code`` the HTTP layer maps to a
status code. None of these should take the process down; the request that
triggered them fails and the session is rolled back.
"""

from typing import Any, Dict, Optional


class ProgressionError(Exception):
    """Base class for progression failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        self.error_code = self.__class__.__name__
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


class InvalidProgressionInput(ProgressionError):
    """Rejected before any write: bad max score, negative delta, unknown event."""


class StatisticsNotFound(ProgressionError):
    """The user has no statistics row."""

    def __init__(self, user_id: int) -> None:
        super().__init__("User statistics not found", {"user_id": user_id})


class LevelRegressionDetected(ProgressionError):
    """
    Stored level is above what the stored XP warrants.

    Logged as an anomaly, never raised to callers; the stored level is kept.
    """

    def __init__(self, user_id: int, stored_level: int, computed_level: int) -> None:
        super().__init__(
            "Computed level is below stored level",
            {
                "user_id": user_id,
                "stored_level": stored_level,
                "computed_level": computed_level,
            },
        )


class StoreUnavailable(ProgressionError):
    """A persistence operation failed; nothing from it was committed."""
