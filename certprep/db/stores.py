"""
Attempt/session store.

Read side for the pure computations and the two serialized
read-modify-write paths:

- ReviewScheduleStore.record: one (learner, question) SM-2 update
- ProgressionStore.apply:     one learner XP/streak update

Both hold a per-key in-process lock and rely on the row ``version``
column for cross-process compare-and-swap. A lost race re-reads the
fresh row and recomputes; the update is never dropped silently.
"""

from __future__ import annotations

from collections.abc import Callable, Collection
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TypeVar

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from certprep.core.errors import ConcurrentUpdateError, InvalidInputError
from certprep.core.locks import KeyedLocks
from certprep.core.models import (
    ActivityEvent,
    Attempt,
    ProgressionState,
    ReviewSchedule,
    TestResult,
    ensure_utc,
)
from certprep.db.database import session_scope
from certprep.db.models import AttemptRow, ProgressionStateRow, ReviewScheduleRow, TestResultRow
from certprep.delivery.scheduler import SM2Scheduler
from certprep.progression.engine import ProgressionEngine, ProgressionOutcome

T = TypeVar("T")


@dataclass
class StoreConfig:
    max_retries: int = 5

    @classmethod
    def from_settings(cls, settings=None) -> StoreConfig:
        from certprep.config import get_settings

        settings = settings or get_settings()
        return cls(max_retries=settings.store_max_retries)


def _retry_on_conflict(
    key: tuple,
    locks: KeyedLocks,
    max_retries: int,
    attempt_once: Callable[[], T],
) -> T:
    """Run ``attempt_once`` under the key's lock, retrying lost version races."""
    with locks.hold(key):
        for attempt in range(1, max_retries + 1):
            try:
                return attempt_once()
            except (StaleDataError, IntegrityError) as e:
                logger.warning(
                    f"Version conflict on {key} (attempt {attempt}/{max_retries}): "
                    f"{type(e).__name__}"
                )
    logger.error(f"Giving up on {key} after {max_retries} conflicting attempts")
    raise ConcurrentUpdateError(key, max_retries)


# =============================================================================
# Attempt log
# =============================================================================


class AttemptLog:
    """Append-only attempt history."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def append(self, attempt: Attempt) -> None:
        with session_scope(self._session_factory) as session:
            session.add(AttemptRow.from_attempt(attempt))

    def window_for_objective(
        self,
        learner_id: str,
        objective_id: str,
        now: datetime,
        days: int = 30,
        limit: int = 50,
    ) -> list[Attempt]:
        """Attempts on one objective from the last ``days``, newest first."""
        now = ensure_utc(now)
        stmt = (
            select(AttemptRow)
            .where(
                AttemptRow.learner_id == learner_id,
                AttemptRow.objective_id == objective_id,
                AttemptRow.answered_at >= now - timedelta(days=days),
                AttemptRow.answered_at <= now,
            )
            .order_by(AttemptRow.answered_at.desc(), AttemptRow.id.desc())
            .limit(limit)
        )
        with session_scope(self._session_factory) as session:
            return [row.to_attempt() for row in session.scalars(stmt)]

    def recent(
        self,
        learner_id: str,
        limit: int = 10,
        question_ids: Collection[str] | None = None,
    ) -> list[Attempt]:
        """Most recent attempts, newest first, optionally limited to a question set."""
        stmt = select(AttemptRow).where(AttemptRow.learner_id == learner_id)
        if question_ids is not None:
            stmt = stmt.where(AttemptRow.question_id.in_(list(question_ids)))
        stmt = stmt.order_by(AttemptRow.answered_at.desc(), AttemptRow.id.desc()).limit(limit)
        with session_scope(self._session_factory) as session:
            return [row.to_attempt() for row in session.scalars(stmt)]

    def for_question(self, learner_id: str, question_id: str) -> list[Attempt]:
        """Every attempt on one question, oldest first."""
        stmt = (
            select(AttemptRow)
            .where(AttemptRow.learner_id == learner_id, AttemptRow.question_id == question_id)
            .order_by(AttemptRow.answered_at, AttemptRow.id)
        )
        with session_scope(self._session_factory) as session:
            return [row.to_attempt() for row in session.scalars(stmt)]

    def history(
        self,
        learner_id: str,
        question_ids: Collection[str] | None = None,
        since: datetime | None = None,
    ) -> list[Attempt]:
        """All attempts (optionally since a time), newest first."""
        stmt = select(AttemptRow).where(AttemptRow.learner_id == learner_id)
        if question_ids is not None:
            stmt = stmt.where(AttemptRow.question_id.in_(list(question_ids)))
        if since is not None:
            stmt = stmt.where(AttemptRow.answered_at >= ensure_utc(since))
        stmt = stmt.order_by(AttemptRow.answered_at.desc(), AttemptRow.id.desc())
        with session_scope(self._session_factory) as session:
            return [row.to_attempt() for row in session.scalars(stmt)]

    def questions_answered(
        self,
        learner_id: str,
        question_ids: Collection[str] | None = None,
    ) -> int:
        """Distinct questions the learner has answered."""
        stmt = select(func.count(func.distinct(AttemptRow.question_id))).where(
            AttemptRow.learner_id == learner_id
        )
        if question_ids is not None:
            stmt = stmt.where(AttemptRow.question_id.in_(list(question_ids)))
        with session_scope(self._session_factory) as session:
            return session.scalar(stmt) or 0


# =============================================================================
# Test results
# =============================================================================


class TestResultStore:
    """Append-only exam results."""

    __test__ = False

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def append(self, result: TestResult) -> None:
        with session_scope(self._session_factory) as session:
            session.add(TestResultRow.from_result(result))

    def recent(self, learner_id: str, exam_id: str, limit: int | None = 5) -> list[TestResult]:
        """Latest results for one learner and exam, newest first."""
        stmt = (
            select(TestResultRow)
            .where(TestResultRow.learner_id == learner_id, TestResultRow.exam_id == exam_id)
            .order_by(TestResultRow.completed_at.desc(), TestResultRow.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with session_scope(self._session_factory) as session:
            return [row.to_result() for row in session.scalars(stmt)]

    def score_distribution(self, exam_id: str) -> list[float]:
        """Every recorded weighted score for an exam, for percentile ranks."""
        stmt = select(TestResultRow.score).where(TestResultRow.exam_id == exam_id)
        with session_scope(self._session_factory) as session:
            return list(session.scalars(stmt))


# =============================================================================
# Review schedules
# =============================================================================


class ReviewScheduleStore:
    """SM-2 rows, updated one (learner, question) at a time."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: StoreConfig | None = None,
        locks: KeyedLocks | None = None,
    ):
        self._session_factory = session_factory
        self.config = config or StoreConfig()
        self._locks = locks or KeyedLocks()

    def get(self, learner_id: str, question_id: str) -> ReviewSchedule | None:
        with session_scope(self._session_factory) as session:
            row = session.get(ReviewScheduleRow, (learner_id, question_id))
            return row.to_schedule() if row else None

    def for_learner(
        self,
        learner_id: str,
        question_ids: Collection[str] | None = None,
    ) -> list[ReviewSchedule]:
        stmt = select(ReviewScheduleRow).where(ReviewScheduleRow.learner_id == learner_id)
        if question_ids is not None:
            stmt = stmt.where(ReviewScheduleRow.question_id.in_(list(question_ids)))
        with session_scope(self._session_factory) as session:
            return [row.to_schedule() for row in session.scalars(stmt)]

    def due(
        self,
        learner_id: str,
        now: datetime,
        question_ids: Collection[str] | None = None,
    ) -> list[ReviewSchedule]:
        """Rows whose review time has passed, earliest first."""
        stmt = (
            select(ReviewScheduleRow)
            .where(
                ReviewScheduleRow.learner_id == learner_id,
                ReviewScheduleRow.next_review_at.is_not(None),
                ReviewScheduleRow.next_review_at <= ensure_utc(now),
            )
            .order_by(ReviewScheduleRow.next_review_at)
        )
        if question_ids is not None:
            stmt = stmt.where(ReviewScheduleRow.question_id.in_(list(question_ids)))
        with session_scope(self._session_factory) as session:
            return [row.to_schedule() for row in session.scalars(stmt)]

    def record(
        self,
        attempt: Attempt,
        scheduler: SM2Scheduler,
        now: datetime | None = None,
        log_attempt: bool = False,
    ) -> ReviewSchedule:
        """
        Apply one attempt to the stored schedule.

        Args:
            attempt: Graded attempt
            scheduler: SM-2 scheduler (its RNG supplies the jitter)
            now: Review time (defaults to the attempt's answered_at)
            log_attempt: Also append the attempt to the log in the same
                transaction, so neither write lands without the other

        Returns:
            The schedule as written

        Raises:
            ConcurrentUpdateError: every retry lost the version race
        """
        key = (attempt.learner_id, attempt.question_id)

        def attempt_once() -> ReviewSchedule:
            with session_scope(self._session_factory) as session:
                row = session.get(ReviewScheduleRow, key)
                current = row.to_schedule() if row else None
                updated = scheduler.calculate_next_review(current, attempt, now)
                if log_attempt:
                    session.add(AttemptRow.from_attempt(attempt))
                if row is None:
                    session.add(ReviewScheduleRow.from_schedule(updated))
                else:
                    row.apply(updated)
            return updated

        return _retry_on_conflict(key, self._locks, self.config.max_retries, attempt_once)


# =============================================================================
# Progression state
# =============================================================================


class ProgressionStore:
    """One XP/streak row per learner."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: StoreConfig | None = None,
        locks: KeyedLocks | None = None,
    ):
        self._session_factory = session_factory
        self.config = config or StoreConfig()
        self._locks = locks or KeyedLocks()

    def get(self, learner_id: str) -> ProgressionState:
        """Stored state, or a fresh zero state for a learner with no row yet."""
        with session_scope(self._session_factory) as session:
            row = session.get(ProgressionStateRow, learner_id)
            return row.to_state() if row else ProgressionState(learner_id=learner_id)

    def update(
        self,
        learner_id: str,
        transition: Callable[[ProgressionState], tuple[ProgressionState, T]],
    ) -> T:
        """
        Serialized read-modify-write of one learner's state.

        ``transition`` receives the freshest state and returns the new state
        plus a result to hand back. It may run more than once.
        """
        key = (learner_id,)

        def attempt_once() -> T:
            with session_scope(self._session_factory) as session:
                row = session.get(ProgressionStateRow, learner_id)
                current = row.to_state() if row else ProgressionState(learner_id=learner_id)
                new_state, result = transition(current)
                if new_state.learner_id != learner_id:
                    raise InvalidInputError(
                        f"Transition changed learner {learner_id} -> {new_state.learner_id}",
                        fields=["learner_id"],
                    )
                if new_state.total_xp < current.total_xp:
                    raise InvalidInputError(
                        f"Total XP cannot decrease ({current.total_xp} -> {new_state.total_xp})",
                        fields=["total_xp"],
                    )
                if row is None:
                    session.add(ProgressionStateRow.from_state(new_state))
                else:
                    row.apply(new_state)
            return result

        return _retry_on_conflict(key, self._locks, self.config.max_retries, attempt_once)

    def apply(
        self,
        learner_id: str,
        engine: ProgressionEngine,
        event: ActivityEvent,
    ) -> ProgressionOutcome:
        """Apply one activity event through the progression engine."""

        def transition(state: ProgressionState) -> tuple[ProgressionState, ProgressionOutcome]:
            outcome = engine.apply(state, event)
            return outcome.state, outcome

        return self.update(learner_id, transition)

    def grant_streak_freezes(
        self,
        learner_id: str,
        engine: ProgressionEngine,
        count: int,
        entitled: bool,
    ) -> ProgressionState:
        def transition(state: ProgressionState) -> tuple[ProgressionState, ProgressionState]:
            new_state = engine.grant_streak_freezes(state, count, entitled)
            return new_state, new_state

        return self.update(learner_id, transition)
