"""
Study streaks.

A local calendar day counts once the learner answers at least five
questions on it. The streak is the run of consecutive counting days
ending today or yesterday: a learner who studied yesterday keeps the
streak until today ends. Freeze credits stand in for missed days.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from zoneinfo import ZoneInfo

from certprep.core.models import Attempt, ProgressionState, local_day


STREAK_MILESTONES: tuple[int, ...] = (7, 14, 30, 60, 100, 180, 365)


@dataclass(frozen=True)
class StreakUpdate:
    current: int
    longest: int
    last_activity_date: date | None
    freezes_remaining: int
    freezes_used: int = 0
    extended: bool = False


def questions_per_day(attempts: Iterable[Attempt], tz: str | ZoneInfo = "UTC") -> Counter[date]:
    """Answered-question counts per local calendar day."""
    return Counter(local_day(a.answered_at, tz) for a in attempts)


def counting_days(
    attempts: Iterable[Attempt],
    tz: str | ZoneInfo = "UTC",
    min_questions: int = 5,
) -> set[date]:
    """Local days with enough answered questions to count toward a streak."""
    return {day for day, n in questions_per_day(attempts, tz).items() if n >= min_questions}


def streak_from_days(days: Iterable[date], today: date) -> int:
    """Consecutive counting days ending today, or yesterday if today has not counted yet."""
    days = set(days)
    cursor = today if today in days else today - timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def advance_streak(
    state: ProgressionState,
    day: date,
    allow_freezes: bool = True,
) -> StreakUpdate:
    """
    Apply one counting day to the stored streak.

    Args:
        state: Current progression state
        day: Local calendar day that just qualified
        allow_freezes: Whether freeze credits may bridge missed days

    Returns:
        StreakUpdate; ``extended`` is False when the day was already counted
    """
    last = state.last_activity_date
    unchanged = StreakUpdate(
        current=state.current_streak,
        longest=state.longest_streak,
        last_activity_date=last,
        freezes_remaining=state.streak_freezes,
    )

    if last is not None and day <= last:
        return unchanged

    freezes_used = 0
    if last is None:
        current = 1
    else:
        missed = (day - last).days - 1
        if missed == 0:
            current = state.current_streak + 1
        elif allow_freezes and missed <= state.streak_freezes:
            freezes_used = missed
            current = state.current_streak + 1
        else:
            current = 1

    return StreakUpdate(
        current=current,
        longest=max(state.longest_streak, current),
        last_activity_date=day,
        freezes_remaining=state.streak_freezes - freezes_used,
        freezes_used=freezes_used,
        extended=True,
    )


def effective_streak(state: ProgressionState, today: date, entitled: bool = False) -> int:
    """
    Streak as the learner should see it today.

    The stored value goes stale when days pass without activity; this
    reports 0 once the gap can no longer be bridged. Freeze credits only
    bridge a gap for entitled learners, as in ``advance_streak``.
    """
    if state.last_activity_date is None:
        return 0
    missed = (today - state.last_activity_date).days - 1
    if missed <= 0 or (entitled and missed <= state.streak_freezes):
        return state.current_streak
    return 0


def milestones_crossed(previous: int, current: int) -> list[int]:
    """Milestones reached by moving the streak from ``previous`` to ``current``."""
    return [m for m in STREAK_MILESTONES if previous < m <= current]
