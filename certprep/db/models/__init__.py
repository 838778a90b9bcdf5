# SQLAlchemy models
from .base import Base
from .log import AttemptRow, TestResultRow
from .state import ProgressionStateRow, ReviewScheduleRow

__all__ = [
    # Base
    "Base",
    # Append-only
    "AttemptRow",
    "TestResultRow",
    # Versioned state
    "ReviewScheduleRow",
    "ProgressionStateRow",
]
