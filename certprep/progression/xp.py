"""
Experience points and levels.

Level formula:
    level = floor((total_xp / 100) ** (2/3)), minimum 1
    xp for level L = 100 * L ** 1.5
"""

from __future__ import annotations

import math

from certprep.core.models import ActivityType

BASE_XP: dict[ActivityType, int] = {
    ActivityType.FIRST_TRY_CORRECT: 10,
    ActivityType.RETRY_CORRECT: 5,
    ActivityType.SESSION_COMPLETE: 25,
    ActivityType.TEST_COMPLETE: 100,
    ActivityType.STREAK_MILESTONE: 50,
    ActivityType.WEEKLY_GOAL: 100,
    ActivityType.OBJECTIVE_MASTERY: 150,
}

# (minimum score %, multiplier), highest first
TEST_SCORE_BONUSES: tuple[tuple[float, float], ...] = ((95.0, 2.0), (85.0, 1.5), (75.0, 1.2))

# (minimum questions, multiplier), highest first
SESSION_LENGTH_BONUSES: tuple[tuple[int, float], ...] = ((50, 1.5), (25, 1.2))


def score_multiplier(score: float | None) -> float:
    if score is None:
        return 1.0
    for minimum, multiplier in TEST_SCORE_BONUSES:
        if score >= minimum:
            return multiplier
    return 1.0


def session_length_multiplier(question_count: int | None) -> float:
    if question_count is None:
        return 1.0
    for minimum, multiplier in SESSION_LENGTH_BONUSES:
        if question_count >= minimum:
            return multiplier
    return 1.0


def xp_for_level(level: int) -> float:
    """Total XP at which ``level`` is reached."""
    return 100.0 * level**1.5


def level_for_xp(total_xp: int) -> int:
    """
    Level derived from total XP.

    The float estimate is corrected against the integer thresholds so that
    exact boundaries (e.g. 800 XP -> level 4) are not lost to rounding.
    """
    if total_xp <= 0:
        return 1
    level = max(1, math.floor((total_xp / 100.0) ** (2.0 / 3.0)))
    while xp_for_level(level + 1) <= total_xp:
        level += 1
    while level > 1 and xp_for_level(level) > total_xp:
        level -= 1
    return level


def xp_to_next_level(total_xp: int) -> int:
    """XP still needed to reach the next level."""
    level = level_for_xp(total_xp)
    return max(0, math.ceil(xp_for_level(level + 1) - total_xp))
