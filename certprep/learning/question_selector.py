"""
Adaptive Question Selection.

Picks the next question to present based on:
- Recent accuracy (steers target difficulty toward the 65-85% band)
- Due spaced-repetition reviews (served 30% of the time when any are due)
- Objective weakness (mastery below 60 boosts selection weight)
- Item quality (discrimination index above 0.3 boosts selection weight)
- Recency (recently shown questions are damped for a week)

All inputs are pre-fetched by the caller; randomness comes from an
injected ``random.Random`` so selections are reproducible under a seed.
"""

from __future__ import annotations

import random
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from certprep.core.mastery import MasteryRecord
from certprep.core.models import Attempt, Question, ReviewSchedule, clamp, ensure_utc, utc_now

MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 5.0


@dataclass
class SelectorConfig:
    """Configuration for adaptive selection."""

    accuracy_window: int = 10
    raise_above: float = 0.85
    lower_below: float = 0.65
    difficulty_step: float = 0.5
    difficulty_band: float = 0.5
    review_probability: float = 0.3
    exclude_recent: int = 50
    weak_mastery: float = 60.0
    weak_boost: float = 1.5
    discrimination_threshold: float = 0.3
    discrimination_boost: float = 1.2
    recency_days: float = 7.0
    default_difficulty: float = 3.0

    @classmethod
    def from_settings(cls, settings=None) -> SelectorConfig:
        from certprep.config import get_settings

        settings = settings or get_settings()
        return cls(
            accuracy_window=settings.selector_accuracy_window,
            review_probability=settings.selector_review_probability,
            exclude_recent=settings.selector_exclude_recent,
            default_difficulty=settings.selector_default_difficulty,
        )


@dataclass
class SelectionContext:
    """
    Everything the selector needs for one decision.

    ``recent_attempts`` and ``shown_history`` are newest first.
    ``shown_history`` maps question IDs to the time they were last shown.
    ``excluded_ids`` are the recently shown questions kept out of the pool;
    when None, the first ``exclude_recent`` entries of ``shown_history`` are used.
    """

    learner_id: str
    questions: Sequence[Question]
    recent_attempts: Sequence[Attempt] = ()
    schedules: Sequence[ReviewSchedule] = ()
    mastery: Mapping[str, MasteryRecord] = field(default_factory=dict)
    shown_history: Mapping[str, datetime] = field(default_factory=dict)
    excluded_ids: Collection[str] | None = None
    session_recent_ids: Sequence[str] = ()
    objective_ids: Sequence[str] | None = None
    current_difficulty: float | None = None
    exam_id: str | None = None


@dataclass(frozen=True)
class Selection:
    """Outcome of one selection."""

    question_id: str
    source: str  # 'review', 'new', 'widened', 'fallback'
    target_difficulty: float
    weight: float = 1.0


class QuestionSelector:
    """
    Select the next question using adaptive strategies.

    Strategies, in order:
    - Due review: earliest due question near the target difficulty
    - Difficulty-matched pool: weighted draw within +/-0.5 of target
    - Widened pool: same, ignoring difficulty
    - Fallback: any active question for the exam
    """

    def __init__(self, config: SelectorConfig | None = None, rng: random.Random | None = None):
        self.config = config or SelectorConfig()
        self.rng = rng or random.Random()

    # =========================================================================
    # Difficulty targeting
    # =========================================================================

    def recent_accuracy(self, attempts: Sequence[Attempt]) -> float | None:
        window = list(attempts)[: self.config.accuracy_window]
        if not window:
            return None
        return sum(1 for a in window if a.is_correct) / len(window)

    def target_difficulty(self, attempts: Sequence[Attempt], current: float | None = None) -> float:
        """
        Adjust difficulty from recent accuracy.

        >0.85 raises by one step, <0.65 lowers by one step, else holds.
        """
        target = self.config.default_difficulty if current is None else current
        accuracy = self.recent_accuracy(attempts)
        if accuracy is not None:
            if accuracy > self.config.raise_above:
                target += self.config.difficulty_step
            elif accuracy < self.config.lower_below:
                target -= self.config.difficulty_step
        return clamp(target, MIN_DIFFICULTY, MAX_DIFFICULTY)

    # =========================================================================
    # Weighting
    # =========================================================================

    def learning_value(
        self,
        question: Question,
        mastery: Mapping[str, MasteryRecord],
        shown_history: Mapping[str, datetime],
        now: datetime,
    ) -> float:
        """Selection weight for one candidate."""
        weight = 1.0

        record = mastery.get(question.objective_id)
        if record is not None and record.mastery < self.config.weak_mastery:
            weight *= self.config.weak_boost

        if (
            question.discrimination_index is not None
            and question.discrimination_index > self.config.discrimination_threshold
        ):
            weight *= self.config.discrimination_boost

        last_shown = shown_history.get(question.id)
        if last_shown is not None:
            days = (now - ensure_utc(last_shown)).total_seconds() / 86400.0
            weight *= clamp(days / self.config.recency_days, 0.0, 1.0)

        return weight

    def _weighted_draw(self, candidates: list[Question], weights: list[float]) -> tuple[Question, float]:
        if sum(weights) <= 0:
            # Everything was shown moments ago; fall back to a uniform draw
            weights = [1.0] * len(candidates)
        index = self.rng.choices(range(len(candidates)), weights=weights, k=1)[0]
        return candidates[index], weights[index]

    # =========================================================================
    # Pools
    # =========================================================================

    def _eligible(self, ctx: SelectionContext) -> list[Question]:
        questions = [q for q in ctx.questions if q.is_active]
        if ctx.exam_id is not None:
            questions = [q for q in questions if q.exam_id == ctx.exam_id]
        return questions

    def _near(self, question: Question, target: float) -> bool:
        return abs(question.difficulty - target) <= self.config.difficulty_band

    def _pick_review(
        self,
        ctx: SelectionContext,
        by_id: Mapping[str, Question],
        target: float,
        now: datetime,
    ) -> Question | None:
        due = [
            s
            for s in ctx.schedules
            if s.learner_id == ctx.learner_id and s.is_due(now) and s.question_id in by_id
        ]
        if ctx.objective_ids is not None:
            due = [s for s in due if by_id[s.question_id].objective_id in ctx.objective_ids]
        if not due:
            return None
        if self.rng.random() >= self.config.review_probability:
            return None

        near = [s for s in due if self._near(by_id[s.question_id], target)]
        pool = near or due
        earliest = min(pool, key=lambda s: ensure_utc(s.next_review_at))
        return by_id[earliest.question_id]

    def select(self, ctx: SelectionContext, now: datetime | None = None) -> Selection | None:
        """
        Pick the next question.

        Args:
            ctx: Pre-fetched learner and question-bank data
            now: Reference time (defaults to UTC now)

        Returns:
            Selection, or None when the bank has no active question at all
        """
        now = ensure_utc(now or utc_now())
        eligible = self._eligible(ctx)
        if not eligible:
            logger.warning(f"No active questions available for learner {ctx.learner_id}")
            return None

        by_id = {q.id: q for q in eligible}
        target = self.target_difficulty(ctx.recent_attempts, ctx.current_difficulty)

        review = self._pick_review(ctx, by_id, target, now)
        if review is not None:
            logger.debug(f"Serving due review {review.id} to {ctx.learner_id}")
            return Selection(question_id=review.id, source="review", target_difficulty=target)

        if ctx.excluded_ids is not None:
            excluded = set(ctx.excluded_ids)
        else:
            excluded = set(list(ctx.shown_history)[: self.config.exclude_recent])
        excluded.update(ctx.session_recent_ids)

        pool = [q for q in eligible if q.id not in excluded]
        if ctx.objective_ids is not None:
            pool = [q for q in pool if q.objective_id in ctx.objective_ids]

        source = "new"
        candidates = [q for q in pool if self._near(q, target)]
        if not candidates:
            logger.debug(f"No questions near difficulty {target}; widening pool")
            candidates = pool
            source = "widened"
        if not candidates:
            logger.info(f"Candidate pool empty for {ctx.learner_id}; falling back to any active question")
            candidates = eligible
            source = "fallback"

        weights = [self.learning_value(q, ctx.mastery, ctx.shown_history, now) for q in candidates]
        chosen, weight = self._weighted_draw(candidates, weights)

        logger.debug(
            f"Selected {chosen.id} for {ctx.learner_id} "
            f"(source={source}, target={target}, pool={len(candidates)})"
        )
        return Selection(question_id=chosen.id, source=source, target_difficulty=target, weight=weight)
