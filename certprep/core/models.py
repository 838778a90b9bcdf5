"""
Core domain models.

Plain immutable values shared by every component. None of these carry
framework or persistence dependencies; the stores in ``certprep.db``
translate them to and from rows.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Mapping
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a timestamp to aware UTC.

    Naive values are assumed to already be UTC (SQLite hands them back
    without tzinfo).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def local_day(timestamp: datetime, tz: str | ZoneInfo = "UTC") -> date:
    """Calendar date of a timestamp in the learner's time zone."""
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    return ensure_utc(timestamp).astimezone(zone).date()


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value into [low, high]; NaN collapses to ``low``."""
    if math.isnan(value):
        return low
    return max(low, min(high, value))


class QuestionType(str, Enum):
    """Question formats the grader understands."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    MULTI_SELECT = "multi_select"


@dataclass(frozen=True)
class Attempt:
    """One graded answer. Immutable once written."""

    learner_id: str
    question_id: str
    objective_id: str
    is_correct: bool
    quality: int  # 1-5 response quality, consumed by the scheduler
    time_spent_seconds: float
    answered_at: datetime


@dataclass(frozen=True)
class Objective:
    """A syllabus topic."""

    id: str
    weight: float
    name: str = ""


@dataclass(frozen=True)
class Question:
    """Question metadata supplied by the content store."""

    id: str
    exam_id: str
    objective_id: str
    difficulty: float = 3.0  # 1-5 scale
    discrimination_index: float | None = None
    is_active: bool = True
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    correct_options: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ExamBlueprint:
    """
    Official scoring configuration for one exam.

    Build through ``certprep.core.schemas.parse_blueprint`` when the data
    comes from outside the engine; the constructor itself does not validate.
    """

    exam_id: str
    weights: Mapping[str, float]
    passing_threshold: float = 65.0
    min_questions_per_objective: int = 3

    def __post_init__(self):
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))

    @property
    def objective_ids(self) -> list[str]:
        return list(self.weights)

    @property
    def objectives(self) -> list[Objective]:
        return [Objective(id=obj_id, weight=w) for obj_id, w in self.weights.items()]

    def weight_for(self, objective_id: str) -> float:
        return self.weights.get(objective_id, 0.0)


@dataclass(frozen=True)
class ObjectiveScore:
    """Per-objective slice of a test result."""

    objective_id: str
    correct: int
    total: int
    weight: float
    reliable: bool

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return 100.0 * self.correct / self.total


@dataclass(frozen=True)
class TestResult:
    """One completed simulated exam. Immutable once finalized."""

    __test__ = False  # not a pytest collection target

    learner_id: str
    exam_id: str
    objective_scores: tuple[ObjectiveScore, ...]
    score: float  # weighted, 0-100, one decimal
    passed: bool
    completed_at: datetime
    correct_count: int = 0
    incorrect_count: int = 0
    skipped_count: int = 0
    percentile: float | None = None

    @property
    def total_questions(self) -> int:
        return self.correct_count + self.incorrect_count + self.skipped_count

    @property
    def unreliable_objectives(self) -> list[str]:
        """Objectives answered fewer times than the blueprint minimum."""
        return [s.objective_id for s in self.objective_scores if not s.reliable]

    def breakdown(self) -> dict[str, dict[str, float]]:
        """Per-objective breakdown in the stored JSON shape."""
        return {
            s.objective_id: {
                "correct": s.correct,
                "total": s.total,
                "percentage": round(s.percentage / 100, 4),
            }
            for s in self.objective_scores
        }


@dataclass(frozen=True)
class ReviewSchedule:
    """Spaced-repetition state for one (learner, question) pair."""

    learner_id: str
    question_id: str
    easiness_factor: float = 2.5
    interval_level: int = 1
    interval_days: float = 0.0
    correct_streak: int = 0
    next_review_at: datetime | None = None
    last_reviewed_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        """Never-scheduled rows are not due; only rows with a passed review time are."""
        if self.next_review_at is None:
            return False
        return ensure_utc(self.next_review_at) <= ensure_utc(now)


@dataclass(frozen=True)
class ProgressionState:
    """
    XP and streak state for one learner.

    ``level`` is always derived from ``total_xp`` and never stored.
    """

    learner_id: str
    total_xp: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None
    streak_freezes: int = 0

    @property
    def level(self) -> int:
        # Local import keeps the formula in one place without a cycle.
        from certprep.progression.xp import level_for_xp

        return level_for_xp(self.total_xp)


class ActivityType(str, Enum):
    """Events that award experience points."""

    FIRST_TRY_CORRECT = "first_try_correct"
    RETRY_CORRECT = "retry_correct"
    SESSION_COMPLETE = "session_complete"
    TEST_COMPLETE = "test_complete"
    STREAK_MILESTONE = "streak_milestone"
    WEEKLY_GOAL = "weekly_goal"
    OBJECTIVE_MASTERY = "objective_mastery"


@dataclass(frozen=True)
class ActivityEvent:
    """
    One qualifying learner activity fed to the progression engine.

    ``questions_today`` is the number of questions the learner has answered
    on the event's local calendar day (including this event, if it is an
    answer); it drives the streak. Leave it None when unknown.
    """

    activity: ActivityType
    occurred_at: datetime
    score: float | None = None
    question_count: int | None = None
    entitled: bool = False
    questions_today: int | None = None
    timezone: str = "UTC"
