"""XP, levels, streaks and the progression engine."""

from certprep.progression.engine import (
    NotificationKind,
    NotificationRequest,
    ProgressionConfig,
    ProgressionEngine,
    ProgressionOutcome,
)
from certprep.progression.streaks import STREAK_MILESTONES, advance_streak, effective_streak
from certprep.progression.xp import BASE_XP, level_for_xp, xp_for_level, xp_to_next_level

__all__ = [
    "ProgressionEngine",
    "ProgressionConfig",
    "ProgressionOutcome",
    "NotificationKind",
    "NotificationRequest",
    # Streaks
    "STREAK_MILESTONES",
    "advance_streak",
    "effective_streak",
    # XP
    "BASE_XP",
    "level_for_xp",
    "xp_for_level",
    "xp_to_next_level",
]
