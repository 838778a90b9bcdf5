"""
Modified SM-2 Spaced Repetition Scheduler.

Turns one graded attempt into the next review date for that
(learner, question) pair.

Differences from classic SM-2:
- Interval grows by level (1-6) from a fixed base table, scaled by EF
- Level on a correct answer = min(correct streak + 2, 6)
- A miss resets to level 1 (one day) and costs 0.2 EF
- A uniform +/-10% jitter spreads reviews to avoid clustering

Response quality scale (1-5):
1 - Correct by luck / near blackout
2 - Correct with serious difficulty
3 - Correct with some effort
4 - Correct with slight hesitation
5 - Correct with perfect recall
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger

from certprep.core.models import Attempt, ReviewSchedule, clamp, ensure_utc, utc_now

# =============================================================================
# Interval table
# =============================================================================

BASE_INTERVAL_DAYS: dict[int, int] = {1: 1, 2: 2, 3: 4, 4: 8, 5: 16, 6: 32}
MIN_LEVEL = 1
MAX_LEVEL = 6


@dataclass
class SM2Config:
    """Configuration for the modified SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    failure_penalty: float = 0.2
    jitter: float = 0.1
    base_intervals: dict[int, int] = field(default_factory=lambda: dict(BASE_INTERVAL_DAYS))

    @classmethod
    def from_settings(cls, settings=None) -> SM2Config:
        from certprep.config import get_settings

        settings = settings or get_settings()
        return cls(
            initial_easiness=settings.sm2_initial_easiness,
            minimum_easiness=settings.sm2_minimum_easiness,
            failure_penalty=settings.sm2_failure_penalty,
            jitter=settings.sm2_jitter,
        )


def easiness_delta(quality: int) -> float:
    """
    SM-2 easiness adjustment for a correct answer.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    """
    q = int(clamp(quality, 1, 5))
    return 0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)


class SM2Scheduler:
    """
    Implements the modified SM-2 spaced repetition algorithm.

    Each (learner, question) pair has:
    - Easiness Factor (EF): growth multiplier (2.5 default, min 1.3)
    - Interval level: 1-6, indexes the base interval table
    - Correct streak: consecutive correct answers
    """

    def __init__(self, config: SM2Config | None = None, rng: random.Random | None = None):
        """
        Initialize scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
            rng: Randomness source for jitter; pass a seeded Random in tests
        """
        self.config = config or SM2Config()
        self.rng = rng or random.Random()

    def initial_state(self, learner_id: str, question_id: str) -> ReviewSchedule:
        """Schedule row for a question the learner has never reviewed."""
        return ReviewSchedule(
            learner_id=learner_id,
            question_id=question_id,
            easiness_factor=self.config.initial_easiness,
        )

    def base_interval(self, level: int, easiness: float) -> float:
        """Interval in days before jitter."""
        level = int(clamp(level, MIN_LEVEL, MAX_LEVEL))
        return self.config.base_intervals[level] * easiness

    def _jitter(self) -> float:
        j = self.config.jitter
        return self.rng.uniform(1.0 - j, 1.0 + j)

    def calculate_next_review(
        self,
        state: ReviewSchedule | None,
        attempt: Attempt,
        now: datetime | None = None,
    ) -> ReviewSchedule:
        """
        Calculate the next review after a graded attempt.

        Args:
            state: Current schedule for the pair (None if never reviewed)
            attempt: The just-graded attempt
            now: Reference time (defaults to the attempt timestamp)

        Returns:
            New ReviewSchedule; the input is never mutated
        """
        now = ensure_utc(now or attempt.answered_at or utc_now())
        if state is None:
            state = self.initial_state(attempt.learner_id, attempt.question_id)

        floor = self.config.minimum_easiness
        previous_ef = max(floor, state.easiness_factor)

        if not attempt.is_correct:
            # Failed - back to one day, EF penalty
            new_ef = max(floor, previous_ef - self.config.failure_penalty)
            new_level = MIN_LEVEL
            new_streak = 0
            interval = self.config.base_intervals[MIN_LEVEL] * self._jitter()
        else:
            new_streak = state.correct_streak + 1
            new_level = min(new_streak + 2, MAX_LEVEL)
            new_ef = max(floor, previous_ef + easiness_delta(attempt.quality))
            interval = self.base_interval(new_level, new_ef) * self._jitter()

            # Jitter must never make a repeat success come sooner than the last one
            if new_ef >= previous_ef and state.interval_days > 0:
                interval = max(interval, state.interval_days)

        next_review = now + timedelta(days=interval)

        logger.debug(
            f"Scheduled {attempt.learner_id}/{attempt.question_id}: "
            f"correct={attempt.is_correct} level={new_level} ef={new_ef:.2f} "
            f"interval={interval:.2f}d"
        )

        return ReviewSchedule(
            learner_id=state.learner_id,
            question_id=state.question_id,
            easiness_factor=round(new_ef, 4),
            interval_level=new_level,
            interval_days=round(interval, 4),
            correct_streak=new_streak,
            next_review_at=next_review,
            last_reviewed_at=now,
        )

    def replay(self, attempts: list[Attempt]) -> ReviewSchedule | None:
        """
        Rebuild a schedule from an attempt history.

        Args:
            attempts: Attempts on one question, oldest first

        Returns:
            Schedule after the last attempt (None for an empty history)
        """
        state: ReviewSchedule | None = None
        for attempt in attempts:
            state = self.calculate_next_review(state, attempt)
        return state

    def due(self, schedules: list[ReviewSchedule], now: datetime | None = None) -> list[ReviewSchedule]:
        """Due rows ordered by earliest due time first."""
        now = ensure_utc(now or utc_now())
        due = [s for s in schedules if s.is_due(now)]
        due.sort(key=lambda s: ensure_utc(s.next_review_at))
        return due
