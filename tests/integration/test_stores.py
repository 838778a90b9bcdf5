"""
Integration tests for the SQLAlchemy stores.

Uses SQLite: in-memory for plain reads/writes, a file database where a
second connection is needed to lose a version race.
"""

import random
import threading
from datetime import timedelta

import pytest
from sqlalchemy import select

from certprep.core.errors import ConcurrentUpdateError, InvalidInputError
from certprep.core.models import (
    ActivityEvent,
    ActivityType,
    ExamBlueprint,
    ProgressionState,
    Question,
)
from certprep.db.database import create_engine_from_settings, init_db, make_session_factory, session_scope
from certprep.db.models import ProgressionStateRow, ReviewScheduleRow
from certprep.db.stores import (
    AttemptLog,
    ProgressionStore,
    ReviewScheduleStore,
    StoreConfig,
    TestResultStore,
)
from certprep.delivery.scheduler import SM2Config, SM2Scheduler
from certprep.progression.engine import ProgressionEngine
from certprep.quiz.exam_scorer import ExamScorer
from certprep.study.mastery_estimator import MasteryConfig, MasteryEstimator


@pytest.fixture
def session_factory():
    engine = create_engine_from_settings("sqlite:///:memory:", echo=False)
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine_from_settings(f"sqlite:///{tmp_path / 'store.db'}", echo=False)
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def scheduler():
    return SM2Scheduler(SM2Config(jitter=0.0), random.Random(0))


class InterferingScheduler(SM2Scheduler):
    """Lets a competing writer commit just before each of the first ``conflicts`` computations."""

    def __init__(self, session_factory, conflicts):
        super().__init__(SM2Config(jitter=0.0), random.Random(0))
        self.session_factory = session_factory
        self.remaining = conflicts
        self.calls = 0

    def calculate_next_review(self, state, attempt, now=None):
        self.calls += 1
        if self.remaining > 0:
            self.remaining -= 1
            key = (attempt.learner_id, attempt.question_id)
            with session_scope(self.session_factory) as session:
                row = session.get(ReviewScheduleRow, key)
                if row is None:
                    session.add(ReviewScheduleRow.from_schedule(self.initial_state(*key)))
                else:
                    row.interval_days = row.interval_days + 1.0
        return super().calculate_next_review(state, attempt, now)


class TestAttemptLog:
    def test_window_newest_first_and_bounded(self, session_factory, make_attempt, now):
        log = AttemptLog(session_factory)
        for i in range(8):
            log.append(make_attempt(is_correct=i % 2 == 0, minutes_ago=i))
        log.append(make_attempt(minutes_ago=int(timedelta(days=40).total_seconds() // 60)))
        log.append(make_attempt(objective_id="2.0", question_id="q2-0"))

        window = log.window_for_objective("learner-1", "1.0", now, days=30, limit=5)

        assert len(window) == 5
        assert [a.answered_at for a in window] == sorted((a.answered_at for a in window), reverse=True)
        assert window[0].answered_at == now
        assert window[0].answered_at.tzinfo is not None

    def test_window_edge_matches_estimator(self, session_factory, make_attempt, now):
        log = AttemptLog(session_factory)
        edge = make_attempt(minutes_ago=30 * 24 * 60)
        too_old = make_attempt(minutes_ago=30 * 24 * 60 + 1)
        log.append(edge)
        log.append(too_old)

        stored = log.window_for_objective("learner-1", "1.0", now, days=30)

        assert stored == [edge]
        assert MasteryEstimator(MasteryConfig(window_days=30)).select_window([edge, too_old], now) == stored

    def test_recent_for_question_and_counts(self, session_factory, make_attempt):
        log = AttemptLog(session_factory)
        log.append(make_attempt(question_id="q1-0", minutes_ago=30))
        log.append(make_attempt(question_id="q1-1", minutes_ago=20))
        log.append(make_attempt(question_id="q1-0", minutes_ago=10, is_correct=False))
        log.append(make_attempt(question_id="q1-0", learner_id="someone-else"))

        assert [a.question_id for a in log.recent("learner-1", limit=2)] == ["q1-0", "q1-1"]
        assert [a.is_correct for a in log.for_question("learner-1", "q1-0")] == [True, False]
        assert log.questions_answered("learner-1") == 2
        assert log.questions_answered("learner-1", question_ids=["q1-1", "q9-9"]) == 1
        assert len(log.history("learner-1", question_ids=["q1-0"])) == 2


class TestTestResultStore:
    def test_round_trip_and_distribution(self, session_factory, now):
        blueprint = ExamBlueprint(exam_id="exam", weights={"a": 1.0})
        bank = {
            f"q{i}": Question(id=f"q{i}", exam_id="exam", objective_id="a", correct_options=frozenset({"x"}))
            for i in range(4)
        }
        scorer = ExamScorer(blueprint)
        store = TestResultStore(session_factory)
        first = scorer.score("learner-1", {"q0": "x", "q1": "x", "q2": "y", "q3": None}, bank,
                             completed_at=now - timedelta(days=1))
        second = scorer.score("learner-1", {"q0": "x", "q1": "x", "q2": "x", "q3": "x"}, bank,
                              completed_at=now)
        store.append(first)
        store.append(second)

        recent = store.recent("learner-1", "exam")

        assert recent == [second, first]
        assert recent[1].skipped_count == 1
        assert sorted(store.score_distribution("exam")) == [50.0, 100.0]


class TestReviewScheduleStore:
    def test_record_inserts_then_updates(self, session_factory, scheduler, make_attempt):
        store = ReviewScheduleStore(session_factory)

        first = store.record(make_attempt(is_correct=True, quality=5, minutes_ago=10), scheduler)
        second = store.record(make_attempt(is_correct=False, minutes_ago=0), scheduler)

        assert first.interval_level == 3
        assert second.interval_level == 1
        assert store.get("learner-1", "q1-0") == second
        with session_scope(session_factory) as session:
            assert session.get(ReviewScheduleRow, ("learner-1", "q1-0")).version == 2

    def test_due(self, session_factory, scheduler, make_attempt, now):
        store = ReviewScheduleStore(session_factory)
        store.record(make_attempt(is_correct=False, question_id="q1-0"), scheduler)
        store.record(make_attempt(is_correct=True, question_id="q1-1"), scheduler)

        assert store.due("learner-1", now + timedelta(days=2)) == [store.get("learner-1", "q1-0")]
        assert store.due("learner-1", now) == []
        assert len(store.for_learner("learner-1")) == 2

    def test_lost_insert_race_is_retried(self, file_session_factory, make_attempt):
        store = ReviewScheduleStore(file_session_factory, StoreConfig(max_retries=3))
        scheduler = InterferingScheduler(file_session_factory, conflicts=1)

        result = store.record(make_attempt(is_correct=True, quality=5), scheduler)

        assert scheduler.calls == 2
        assert store.get("learner-1", "q1-0") == result

    def test_lost_update_race_is_retried_on_fresh_state(self, file_session_factory, make_attempt):
        store = ReviewScheduleStore(file_session_factory, StoreConfig(max_retries=3))
        store.record(make_attempt(is_correct=True, quality=5, minutes_ago=60), SM2Scheduler(SM2Config(jitter=0.0)))
        scheduler = InterferingScheduler(file_session_factory, conflicts=2)

        store.record(make_attempt(is_correct=True, quality=5), scheduler)

        assert scheduler.calls == 3
        with session_scope(file_session_factory) as session:
            # first insert, two competing updates, then the successful retry
            assert session.get(ReviewScheduleRow, ("learner-1", "q1-0")).version == 4

    def test_logged_attempt_written_once_across_retries(self, file_session_factory, make_attempt):
        store = ReviewScheduleStore(file_session_factory, StoreConfig(max_retries=3))
        scheduler = InterferingScheduler(file_session_factory, conflicts=2)

        store.record(make_attempt(), scheduler, log_attempt=True)

        assert len(AttemptLog(file_session_factory).for_question("learner-1", "q1-0")) == 1

    def test_failed_update_leaves_no_logged_attempt(self, file_session_factory, make_attempt):
        store = ReviewScheduleStore(file_session_factory, StoreConfig(max_retries=2))
        scheduler = InterferingScheduler(file_session_factory, conflicts=10)

        with pytest.raises(ConcurrentUpdateError):
            store.record(make_attempt(), scheduler, log_attempt=True)

        assert AttemptLog(file_session_factory).for_question("learner-1", "q1-0") == []

    def test_gives_up_after_max_retries(self, file_session_factory, make_attempt):
        store = ReviewScheduleStore(file_session_factory, StoreConfig(max_retries=3))
        scheduler = InterferingScheduler(file_session_factory, conflicts=10)

        with pytest.raises(ConcurrentUpdateError) as exc_info:
            store.record(make_attempt(), scheduler)

        assert exc_info.value.attempts == 3
        assert exc_info.value.key == ("learner-1", "q1-0")


class TestProgressionStore:
    def test_unknown_learner_starts_at_zero(self, session_factory):
        state = ProgressionStore(session_factory).get("new-learner")
        assert state == ProgressionState(learner_id="new-learner")
        assert state.level == 1

    def test_apply_persists_without_level_column(self, session_factory, now):
        store = ProgressionStore(session_factory)
        engine = ProgressionEngine()

        outcome = store.apply(
            "learner-1", engine, ActivityEvent(ActivityType.TEST_COMPLETE, now, score=96.0)
        )

        assert outcome.xp_delta == 200
        assert store.get("learner-1").total_xp == 200
        assert "level" not in ProgressionStateRow.__table__.columns

    def test_xp_decrease_rejected(self, session_factory):
        store = ProgressionStore(session_factory)
        store.update("learner-1", lambda s: (ProgressionState("learner-1", total_xp=50), None))

        with pytest.raises(InvalidInputError):
            store.update("learner-1", lambda s: (ProgressionState("learner-1", total_xp=10), None))
        assert store.get("learner-1").total_xp == 50

    def test_competing_writer_is_not_lost(self, file_session_factory, now):
        store = ProgressionStore(file_session_factory, StoreConfig(max_retries=3))
        engine = ProgressionEngine()
        store.apply("learner-1", engine, ActivityEvent(ActivityType.FIRST_TRY_CORRECT, now))
        interfered = []

        def transition(state):
            if not interfered:
                interfered.append(True)
                with session_scope(file_session_factory) as session:
                    row = session.get(ProgressionStateRow, "learner-1")
                    row.total_xp += 100
            outcome = engine.apply(state, ActivityEvent(ActivityType.RETRY_CORRECT, now))
            return outcome.state, outcome

        store.update("learner-1", transition)

        # 10 (first) + 100 (competing writer) + 5 (retried event)
        assert store.get("learner-1").total_xp == 115

    def test_concurrent_events_for_one_learner(self, file_session_factory, now):
        store = ProgressionStore(file_session_factory)
        engine = ProgressionEngine()
        event = ActivityEvent(ActivityType.FIRST_TRY_CORRECT, now)

        threads = [
            threading.Thread(target=store.apply, args=("learner-1", engine, event)) for _ in range(10)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get("learner-1").total_xp == 100
        with session_scope(file_session_factory) as session:
            rows = session.scalars(select(ProgressionStateRow)).all()
            assert len(rows) == 1
            assert rows[0].version == 10
