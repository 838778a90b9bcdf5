"""
Mastery Estimator for certification objectives.

Turns the recent attempt history of one (learner, objective) pair into a
mastery percentage with a 95% confidence interval.

Model:
- Exponential recency weighting: attempt i (0 = newest) weighs exp(-0.1 * i)
- Normal-approximation margin: 1.96 * sqrt(m * (100 - m) / n)
- Fewer than 5 attempts returns the insufficient-data sentinel
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from certprep.core.mastery import MasteryLevel, MasteryRecord
from certprep.core.models import Attempt, clamp, ensure_utc, utc_now

Z_95 = 1.96


@dataclass
class MasteryConfig:
    """Configuration for mastery estimation."""

    window_days: int = 30
    max_attempts: int = 50
    min_attempts: int = 5
    reliable_attempts: int = 20
    recency_decay: float = 0.1

    @classmethod
    def from_settings(cls, settings=None) -> MasteryConfig:
        from certprep.config import get_settings

        settings = settings or get_settings()
        return cls(
            window_days=settings.mastery_window_days,
            max_attempts=settings.mastery_max_attempts,
            min_attempts=settings.mastery_min_attempts,
            reliable_attempts=settings.mastery_reliable_attempts,
            recency_decay=settings.mastery_recency_decay,
        )


def recency_weights(count: int, decay: float = 0.1) -> list[float]:
    """Weights for positions 0..count-1, newest first."""
    return [math.exp(-decay * i) for i in range(count)]


def weighted_mastery(outcomes: Sequence[bool], decay: float = 0.1) -> float:
    """
    Recency-weighted correct fraction as a percentage.

    Args:
        outcomes: Correctness flags, most recent first
        decay: Exponential decay per position

    Returns:
        Mastery percentage 0-100 (0 for an empty sequence)
    """
    if not outcomes:
        return 0.0
    weights = recency_weights(len(outcomes), decay)
    total = sum(weights)
    correct = sum(w for w, ok in zip(weights, outcomes) if ok)
    return 100.0 * correct / total


def confidence_interval(mastery: float, sample_size: int) -> tuple[float, float]:
    """95% normal-approximation interval around ``mastery``, clamped to [0, 100]."""
    if sample_size <= 0:
        return 0.0, 0.0
    m = clamp(mastery, 0.0, 100.0)
    margin = Z_95 * math.sqrt(m * (100.0 - m) / sample_size)
    return clamp(m - margin, 0.0, m), clamp(m + margin, m, 100.0)


class MasteryEstimator:
    """
    Estimates objective mastery from recent attempts.

    Never raises on sparse data: anything below the minimum sample size
    comes back as the insufficient-data sentinel.
    """

    def __init__(self, config: MasteryConfig | None = None):
        self.config = config or MasteryConfig()

    def select_window(
        self,
        attempts: Iterable[Attempt],
        now: datetime | None = None,
    ) -> list[Attempt]:
        """
        Restrict attempts to the estimation window.

        Returns attempts from the last ``window_days``, newest first,
        capped at ``max_attempts``.
        """
        now = ensure_utc(now or utc_now())
        cutoff = now - timedelta(days=self.config.window_days)
        recent = [a for a in attempts if cutoff <= ensure_utc(a.answered_at) <= now]
        recent.sort(key=lambda a: ensure_utc(a.answered_at), reverse=True)
        return recent[: self.config.max_attempts]

    def estimate(
        self,
        objective_id: str,
        attempts: Iterable[Attempt],
        now: datetime | None = None,
    ) -> MasteryRecord:
        """
        Estimate mastery for one objective.

        Args:
            objective_id: Objective being estimated
            attempts: Attempts by one learner on this objective (any order)
            now: Reference time for the window (defaults to UTC now)

        Returns:
            MasteryRecord (insufficient-data sentinel when sparse)
        """
        window = self.select_window(
            (a for a in attempts if a.objective_id == objective_id), now
        )
        n = len(window)

        if n < self.config.min_attempts:
            logger.debug(
                f"Objective {objective_id}: {n} attempts, need {self.config.min_attempts}"
            )
            return MasteryRecord.insufficient(objective_id, n, self.config.min_attempts)

        mastery = round(
            clamp(weighted_mastery([a.is_correct for a in window], self.config.recency_decay), 0.0, 100.0),
            2,
        )
        lower, upper = confidence_interval(mastery, n)

        record = MasteryRecord(
            objective_id=objective_id,
            mastery=mastery,
            ci_lower=round(lower, 2),
            ci_upper=round(upper, 2),
            level=MasteryLevel.from_percentage(mastery),
            sample_size=n,
            questions_needed=max(0, self.config.reliable_attempts - n),
        )
        logger.debug(
            f"Objective {objective_id}: mastery={record.mastery} "
            f"[{record.ci_lower}, {record.ci_upper}] n={n} level={record.level.value}"
        )
        return record

    def estimate_all(
        self,
        objective_ids: Iterable[str],
        attempts: Iterable[Attempt],
        now: datetime | None = None,
    ) -> dict[str, MasteryRecord]:
        """
        Estimate every objective from one learner's attempts.

        Objectives without attempts get the sentinel; one sparse objective
        never affects the others.
        """
        by_objective: dict[str, list[Attempt]] = {}
        for attempt in attempts:
            by_objective.setdefault(attempt.objective_id, []).append(attempt)

        return {
            obj_id: self.estimate(obj_id, by_objective.get(obj_id, []), now)
            for obj_id in objective_ids
        }
