"""
Performance analytics over the attempt log.

Provides the dashboard breakdowns and the derived signals the readiness
assessor consumes:
- Objective performance (accuracy, timing, coarse label)
- Difficulty performance
- Daily trend in the learner's local calendar
- Trend score (0-100) and study-day count
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from certprep.core.models import Attempt, Question, clamp, ensure_utc, local_day, utc_now


@dataclass(frozen=True)
class PerformanceSlice:
    """Aggregate performance for one grouping key."""

    key: str
    answered: int
    correct: int
    avg_time_seconds: float

    @property
    def accuracy(self) -> float:
        return self.correct / self.answered if self.answered else 0.0

    @property
    def label(self) -> str:
        if self.accuracy >= 0.9:
            return "mastered"
        elif self.accuracy >= 0.8:
            return "proficient"
        elif self.accuracy >= 0.7:
            return "developing"
        return "needs_work"


@dataclass(frozen=True)
class DailyActivity:
    day: date
    questions: int
    correct: int

    @property
    def accuracy(self) -> float:
        return self.correct / self.questions if self.questions else 0.0


def _slices(groups: Mapping[str, list[Attempt]]) -> list[PerformanceSlice]:
    slices = []
    for key, attempts in groups.items():
        answered = len(attempts)
        slices.append(
            PerformanceSlice(
                key=key,
                answered=answered,
                correct=sum(1 for a in attempts if a.is_correct),
                avg_time_seconds=round(sum(a.time_spent_seconds for a in attempts) / answered, 1),
            )
        )
    return slices


def objective_performance(
    attempts: Iterable[Attempt],
    objective_ids: Sequence[str] | None = None,
) -> list[PerformanceSlice]:
    """
    Per-objective accuracy and timing.

    Objectives listed in ``objective_ids`` but never attempted are
    returned with zero counts so dashboards show every blueprint row.
    """
    groups: dict[str, list[Attempt]] = {obj_id: [] for obj_id in objective_ids or ()}
    for attempt in attempts:
        groups.setdefault(attempt.objective_id, []).append(attempt)

    result = []
    for key, grouped in groups.items():
        if grouped:
            result.extend(_slices({key: grouped}))
        else:
            result.append(PerformanceSlice(key=key, answered=0, correct=0, avg_time_seconds=0.0))
    return result


def difficulty_performance(
    attempts: Iterable[Attempt],
    questions: Mapping[str, Question],
) -> list[PerformanceSlice]:
    """Accuracy and timing grouped by question difficulty, easiest first."""
    groups: dict[str, list[Attempt]] = {}
    for attempt in attempts:
        question = questions.get(attempt.question_id)
        if question is None:
            continue
        groups.setdefault(f"{question.difficulty:g}", []).append(attempt)
    return sorted(_slices(groups), key=lambda s: float(s.key))


def daily_activity(
    attempts: Iterable[Attempt],
    tz: str | ZoneInfo = "UTC",
    days: int = 30,
    now: datetime | None = None,
) -> list[DailyActivity]:
    """Questions and correct answers per local day over the last ``days``, newest first."""
    now = ensure_utc(now or utc_now())
    cutoff = now - timedelta(days=days)
    counts: dict[date, list[int]] = {}
    for attempt in attempts:
        answered = ensure_utc(attempt.answered_at)
        if not cutoff < answered <= now:
            continue
        bucket = counts.setdefault(local_day(answered, tz), [0, 0])
        bucket[0] += 1
        bucket[1] += int(attempt.is_correct)
    return [
        DailyActivity(day=day, questions=q, correct=c)
        for day, (q, c) in sorted(counts.items(), reverse=True)
    ]


def trend_score(daily: Sequence[DailyActivity], span: int = 7) -> float:
    """
    Short-term performance trend on a 0-100 scale (50 = flat).

    Compares mean daily accuracy over the most recent ``span`` study days
    with the ``span`` days before: score = 50 + 2 * delta (percentage points).
    """
    if len(daily) < 2:
        return 50.0
    ordered = sorted(daily, key=lambda d: d.day, reverse=True)
    recent = ordered[:span]
    previous = ordered[span : span * 2]
    if not previous:
        # Not enough history for two windows; split what we have
        half = len(ordered) // 2
        recent, previous = ordered[:half], ordered[half:]

    recent_acc = sum(d.accuracy for d in recent) / len(recent)
    previous_acc = sum(d.accuracy for d in previous) / len(previous)
    delta_points = (recent_acc - previous_acc) * 100
    return round(clamp(50.0 + 2 * delta_points, 0.0, 100.0), 1)


def study_days(attempts: Iterable[Attempt], tz: str | ZoneInfo = "UTC") -> int:
    """Distinct local calendar days with any recorded attempt."""
    return len({local_day(a.answered_at, tz) for a in attempts})


def distinct_questions(attempts: Iterable[Attempt]) -> int:
    return len({a.question_id for a in attempts})
