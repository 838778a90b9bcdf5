"""
Study Service for one certification exam.

Provides high-level operations for a presentation layer:
- Record a graded attempt (attempt log + spaced-repetition schedule)
- Mastery per objective and for the whole blueprint
- Next adaptive question
- Score a simulated exam
- Readiness assessment
- XP / streak progression

The service holds no learner state of its own; everything is read from
the stores per call and the pure components do the computing.
"""

from __future__ import annotations

import random
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from certprep.core.errors import UnknownObjectiveError
from certprep.core.mastery import MasteryRecord
from certprep.core.models import (
    ActivityEvent,
    Attempt,
    ExamBlueprint,
    ProgressionState,
    Question,
    ReviewSchedule,
    TestResult,
    ensure_utc,
    local_day,
    utc_now,
)
from certprep.core.schemas import (
    parse_activity_event,
    parse_attempt,
    validate_attempt_references,
    validate_blueprint,
)
from certprep.db.database import get_session_factory
from certprep.db.stores import (
    AttemptLog,
    ProgressionStore,
    ReviewScheduleStore,
    StoreConfig,
    TestResultStore,
)
from certprep.delivery.scheduler import SM2Config, SM2Scheduler
from certprep.learning.question_selector import (
    QuestionSelector,
    Selection,
    SelectionContext,
    SelectorConfig,
)
from certprep.progression.engine import ProgressionConfig, ProgressionEngine, ProgressionOutcome
from certprep.progression.streaks import effective_streak
from certprep.quiz.exam_scorer import (
    ExamScorer,
    TestHistorySummary,
    summarize_test_history,
)
from certprep.quiz.grading import SelectedAnswer
from certprep.study.analytics import (
    PerformanceSlice,
    daily_activity,
    objective_performance,
    study_days,
    trend_score,
)
from certprep.study.mastery_estimator import MasteryConfig, MasteryEstimator
from certprep.study.readiness import (
    ReadinessAssessor,
    ReadinessConfig,
    ReadinessInputs,
    ReadinessSnapshot,
)


class StudyService:
    """
    High-level service for study operations on one exam.

    Coordinates between the stores and the pure components.
    """

    def __init__(
        self,
        blueprint: ExamBlueprint,
        questions: Iterable[Question],
        session_factory: sessionmaker[Session] | None = None,
        rng: random.Random | None = None,
        *,
        mastery_config: MasteryConfig | None = None,
        sm2_config: SM2Config | None = None,
        selector_config: SelectorConfig | None = None,
        readiness_config: ReadinessConfig | None = None,
        progression_config: ProgressionConfig | None = None,
        store_config: StoreConfig | None = None,
    ):
        """
        Initialize study service.

        Args:
            blueprint: Exam blueprint (validated here)
            questions: Question bank; questions of other exams are ignored
            session_factory: SQLAlchemy session factory (process default if None)
            rng: Shared randomness source for jitter and selection
            *_config: Component configuration (from Settings if None)
        """
        self.blueprint = validate_blueprint(blueprint)
        self.questions: dict[str, Question] = {
            q.id: q for q in questions if q.exam_id == self.blueprint.exam_id
        }
        rng = rng or random.Random()

        session_factory = session_factory or get_session_factory()
        store_config = store_config or StoreConfig.from_settings()
        self.attempts = AttemptLog(session_factory)
        self.results = TestResultStore(session_factory)
        self.schedules = ReviewScheduleStore(session_factory, store_config)
        self.progression = ProgressionStore(session_factory, store_config)

        self.estimator = MasteryEstimator(mastery_config or MasteryConfig.from_settings())
        self.scheduler = SM2Scheduler(sm2_config or SM2Config.from_settings(), rng)
        self.selector = QuestionSelector(selector_config or SelectorConfig.from_settings(), rng)
        self.scorer = ExamScorer(self.blueprint)
        self.assessor = ReadinessAssessor(readiness_config or ReadinessConfig.from_settings())
        self.engine = ProgressionEngine(progression_config or ProgressionConfig.from_settings())

        logger.debug(
            f"StudyService ready for exam {self.blueprint.exam_id} "
            f"({len(self.questions)} questions, {len(self.blueprint.weights)} objectives)"
        )

    # =========================================================================
    # Attempts
    # =========================================================================

    def record_attempt(self, attempt: Attempt | Mapping[str, Any]) -> ReviewSchedule:
        """
        Record a graded attempt and reschedule its question.

        The log entry and the schedule update commit together; a failed
        update leaves no attempt behind, so the call can be retried.

        Args:
            attempt: Attempt, or a raw dict validated at the boundary

        Returns:
            The updated ReviewSchedule for the (learner, question) pair
        """
        if not isinstance(attempt, Attempt):
            attempt = parse_attempt(attempt)
        validate_attempt_references([attempt], self.questions)

        return self.schedules.record(attempt, self.scheduler, log_attempt=True)

    # =========================================================================
    # Mastery
    # =========================================================================

    def mastery_for(
        self,
        learner_id: str,
        objective_id: str,
        now: datetime | None = None,
    ) -> MasteryRecord:
        if objective_id not in self.blueprint.weights:
            raise UnknownObjectiveError(objective_id)
        now = ensure_utc(now or utc_now())
        cfg = self.estimator.config
        window = self.attempts.window_for_objective(
            learner_id, objective_id, now, days=cfg.window_days, limit=cfg.max_attempts
        )
        return self.estimator.estimate(objective_id, window, now)

    def mastery_overview(
        self,
        learner_id: str,
        now: datetime | None = None,
    ) -> dict[str, MasteryRecord]:
        """Mastery for every blueprint objective (sentinels where data is sparse)."""
        return {
            obj_id: self.mastery_for(learner_id, obj_id, now)
            for obj_id in self.blueprint.objective_ids
        }

    # =========================================================================
    # Question selection
    # =========================================================================

    def selection_context(
        self,
        learner_id: str,
        session_recent_ids: Sequence[str] = (),
        objective_ids: Sequence[str] | None = None,
        current_difficulty: float | None = None,
        now: datetime | None = None,
    ) -> SelectionContext:
        """
        Gather the selector inputs from the stores.

        The last ``exclude_recent`` attempts decide which questions are kept
        out of the pool; every question shown within ``recency_days`` is in
        ``shown_history`` so its weight is damped even when it is older than
        that exclusion window.
        """
        now = ensure_utc(now or utc_now())
        bank_ids = list(self.questions)
        cfg = self.selector.config

        recent = self.attempts.recent(
            learner_id,
            limit=max(cfg.accuracy_window, cfg.exclude_recent),
            question_ids=bank_ids,
        )
        shown_history: dict[str, datetime] = {}
        for attempt in self.attempts.history(
            learner_id, question_ids=bank_ids, since=now - timedelta(days=cfg.recency_days)
        ):
            shown_history.setdefault(attempt.question_id, attempt.answered_at)

        return SelectionContext(
            learner_id=learner_id,
            questions=list(self.questions.values()),
            recent_attempts=recent,
            schedules=self.schedules.due(learner_id, now, question_ids=bank_ids),
            mastery=self.mastery_overview(learner_id, now),
            shown_history=shown_history,
            excluded_ids={a.question_id for a in recent[: cfg.exclude_recent]},
            session_recent_ids=session_recent_ids,
            objective_ids=objective_ids,
            current_difficulty=current_difficulty,
            exam_id=self.blueprint.exam_id,
        )

    def next_question(
        self,
        learner_id: str,
        session_recent_ids: Sequence[str] = (),
        objective_ids: Sequence[str] | None = None,
        current_difficulty: float | None = None,
        now: datetime | None = None,
    ) -> Selection | None:
        now = ensure_utc(now or utc_now())
        ctx = self.selection_context(
            learner_id, session_recent_ids, objective_ids, current_difficulty, now
        )
        return self.selector.select(ctx, now)

    # =========================================================================
    # Exams
    # =========================================================================

    def score_exam(
        self,
        learner_id: str,
        answers: Mapping[str, SelectedAnswer],
        completed_at: datetime | None = None,
    ) -> TestResult:
        """Score, percentile-rank and store a completed simulated exam."""
        distribution = self.results.score_distribution(self.blueprint.exam_id)
        result = self.scorer.score(
            learner_id,
            answers,
            self.questions,
            score_distribution=distribution,
            completed_at=completed_at,
        )
        self.results.append(result)
        logger.info(
            f"Exam {self.blueprint.exam_id} for {learner_id}: {result.score} "
            f"({'passed' if result.passed else 'failed'})"
        )
        return result

    def test_history(self, learner_id: str) -> TestHistorySummary:
        return summarize_test_history(
            self.results.recent(learner_id, self.blueprint.exam_id, limit=None)
        )

    # =========================================================================
    # Readiness & analytics
    # =========================================================================

    def assess_readiness(
        self,
        learner_id: str,
        timezone: str = "UTC",
        now: datetime | None = None,
    ) -> ReadinessSnapshot:
        now = ensure_utc(now or utc_now())
        bank_ids = list(self.questions)
        history = self.attempts.history(learner_id, question_ids=bank_ids)
        daily = daily_activity(history, timezone, now=now)
        # Fewer than two study days: no trend component
        trend = trend_score(daily) if len(daily) >= 2 else None

        inputs = ReadinessInputs(
            objective_ids=self.blueprint.objective_ids,
            mastery=self.mastery_overview(learner_id, now),
            recent_tests=self.results.recent(
                learner_id, self.blueprint.exam_id, limit=self.assessor.config.recent_tests
            ),
            questions_answered=self.attempts.questions_answered(learner_id, bank_ids),
            trend_score=trend,
            study_days=study_days(history, timezone),
        )
        return self.assessor.assess(inputs)

    def objective_breakdown(self, learner_id: str) -> list[PerformanceSlice]:
        history = self.attempts.history(learner_id, question_ids=list(self.questions))
        return objective_performance(history, self.blueprint.objective_ids)

    # =========================================================================
    # Progression
    # =========================================================================

    def questions_on_day(self, learner_id: str, when: datetime, timezone: str = "UTC") -> int:
        """Questions answered on the local calendar day containing ``when``."""
        day = local_day(when, timezone)
        start = ensure_utc(datetime.combine(day, time.min, tzinfo=ZoneInfo(timezone)))
        return sum(
            1
            for a in self.attempts.history(learner_id, since=start)
            if local_day(a.answered_at, timezone) == day
        )

    def apply_activity(
        self,
        learner_id: str,
        event: ActivityEvent | Mapping[str, Any],
    ) -> ProgressionOutcome:
        """
        Award XP (and streak progress) for one activity event.

        When the event does not say how many questions were answered that
        day, the count is taken from the attempt log.
        """
        if not isinstance(event, ActivityEvent):
            event = parse_activity_event(event)
        if event.questions_today is None:
            event = replace(
                event,
                questions_today=self.questions_on_day(learner_id, event.occurred_at, event.timezone),
            )
        return self.progression.apply(learner_id, self.engine, event)

    def progression_state(self, learner_id: str) -> ProgressionState:
        return self.progression.get(learner_id)

    def current_streak(
        self,
        learner_id: str,
        timezone: str = "UTC",
        now: datetime | None = None,
        entitled: bool = False,
    ) -> int:
        today = local_day(ensure_utc(now or utc_now()), timezone)
        return effective_streak(self.progression.get(learner_id), today, entitled=entitled)
