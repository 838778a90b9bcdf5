"""
Integration tests for StudyService against an in-memory database.

Tests the full path from raw input to stored state:
- Attempt recording and rescheduling
- Mastery and adaptive selection from stored history
- Exam scoring with percentile rank
- Readiness from stored attempts and results
- XP and streaks driven by the attempt log
"""

import random
from datetime import timedelta

import pytest

from certprep.core.errors import (
    ConcurrentUpdateError,
    InvalidInputError,
    UnknownObjectiveError,
    UnknownQuestionError,
)
from certprep.core.mastery import MasteryLevel
from certprep.db.database import create_engine_from_settings, init_db, make_session_factory
from certprep.db.stores import StoreConfig
from certprep.delivery.scheduler import SM2Config
from certprep.learning.question_selector import SelectorConfig
from certprep.progression.engine import ProgressionConfig
from certprep.study.mastery_estimator import MasteryConfig
from certprep.study.readiness import ReadinessConfig
from certprep.study.study_service import StudyService


@pytest.fixture
def service(blueprint, questions):
    engine = create_engine_from_settings("sqlite:///:memory:", echo=False)
    init_db(engine)
    yield StudyService(
        blueprint,
        questions.values(),
        make_session_factory(engine),
        random.Random(7),
        mastery_config=MasteryConfig(),
        sm2_config=SM2Config(),
        selector_config=SelectorConfig(),
        readiness_config=ReadinessConfig(),
        progression_config=ProgressionConfig(),
        store_config=StoreConfig(),
    )
    engine.dispose()


def _answer_five(service, make_attempt, is_correct=True, count=5):
    for i in range(count):
        service.record_attempt(
            make_attempt(is_correct=is_correct, question_id=f"q1-{i % 4}", minutes_ago=i)
        )


class TestAttempts:
    def test_record_raw_attempt(self, service, now):
        schedule = service.record_attempt(
            {
                "learner_id": "learner-1",
                "question_id": "q2-1",
                "objective_id": "2.0",
                "is_correct": False,
                "quality": 2,
                "time_spent_seconds": 12.5,
                "answered_at": now.isoformat(),
            }
        )

        assert schedule.interval_level == 1
        assert schedule.correct_streak == 0
        assert service.schedules.get("learner-1", "q2-1") == schedule
        assert len(service.attempts.history("learner-1")) == 1

    def test_unknown_question_is_not_logged(self, service, make_attempt):
        with pytest.raises(UnknownQuestionError):
            service.record_attempt(make_attempt(question_id="q9-9"))
        assert service.attempts.history("learner-1") == []

    def test_failed_schedule_update_logs_nothing(self, service, make_attempt, monkeypatch):
        def lose_every_race(*args, **kwargs):
            raise ConcurrentUpdateError(("learner-1", "q1-0"), 5)

        monkeypatch.setattr(service.scheduler, "calculate_next_review", lose_every_race)

        with pytest.raises(ConcurrentUpdateError):
            service.record_attempt(make_attempt())
        assert service.attempts.for_question("learner-1", "q1-0") == []

    def test_invalid_payload_rejected(self, service, now):
        with pytest.raises(InvalidInputError):
            service.record_attempt({"learner_id": "learner-1", "question_id": "q1-0", "quality": 9})


class TestMastery:
    def test_mastery_from_stored_window(self, service, make_attempt, now):
        _answer_five(service, make_attempt)

        record = service.mastery_for("learner-1", "1.0", now=now)

        assert record.sample_size == 5
        assert record.has_sufficient_data
        assert record.mastery > 80

    def test_sparse_objective_is_sentinel(self, service, make_attempt, now):
        _answer_five(service, make_attempt, count=4)

        overview = service.mastery_overview("learner-1", now=now)

        assert set(overview) == {"1.0", "2.0", "3.0"}
        assert overview["1.0"].level is MasteryLevel.INSUFFICIENT_DATA
        assert overview["3.0"].sample_size == 0

    def test_unknown_objective(self, service, now):
        with pytest.raises(UnknownObjectiveError):
            service.mastery_for("learner-1", "9.0", now=now)


class TestSelection:
    def test_next_question_comes_from_bank(self, service, make_attempt, now):
        _answer_five(service, make_attempt)

        selection = service.next_question("learner-1", session_recent_ids=["q2-0"], now=now)

        assert selection is not None
        assert selection.question_id in service.questions
        assert selection.question_id != "q2-0"

    def test_recency_damping_reaches_past_exclusion_window(self, service, make_attempt, now):
        service.record_attempt(make_attempt(question_id="q1-0", minutes_ago=24 * 60))
        for i in range(50):
            service.record_attempt(make_attempt(question_id="q2-0", objective_id="2.0", minutes_ago=i))

        ctx = service.selection_context("learner-1", now=now)
        question = service.questions["q1-0"]
        damped = service.selector.learning_value(question, ctx.mastery, ctx.shown_history, now)
        undamped = service.selector.learning_value(question, ctx.mastery, {}, now)

        assert ctx.excluded_ids == {"q2-0"}
        assert "q1-0" in ctx.shown_history
        assert damped == pytest.approx(undamped / 7)

    def test_objective_filter(self, service, now):
        selection = service.next_question("learner-1", objective_ids=["3.0"], now=now)
        assert service.questions[selection.question_id].objective_id == "3.0"


class TestExams:
    def test_scores_and_ranks(self, service, now):
        all_right = {qid: "b" for qid in service.questions}
        all_wrong = {qid: "a" for qid in service.questions}

        first = service.score_exam("learner-1", all_right, completed_at=now - timedelta(hours=1))
        second = service.score_exam("learner-2", all_wrong, completed_at=now)

        assert first.score == 100.0 and first.passed
        assert first.percentile is None
        assert second.score == 0.0 and not second.passed
        assert second.percentile == 0.0
        assert service.test_history("learner-1").tests_taken == 1

    def test_unknown_question_rejects_whole_exam(self, service):
        with pytest.raises(UnknownQuestionError):
            service.score_exam("learner-1", {"q1-0": "b", "nope": "a"})
        assert service.results.score_distribution("ccna-200-301") == []


class TestReadiness:
    def test_new_learner_not_ready(self, service, now):
        snapshot = service.assess_readiness("learner-1", now=now)

        assert not snapshot.ready
        assert 0.0 <= snapshot.readiness <= 100.0
        assert snapshot.recommendations

    def test_empty_learner_scores_zero(self, service, now):
        snapshot = service.assess_readiness("nobody", now=now)

        assert snapshot.readiness == 0.0
        assert snapshot.components.trend == 0.0

    def test_fewer_than_three_tests_give_no_test_component(self, service, make_attempt, now):
        _answer_five(service, make_attempt)
        service.score_exam("learner-1", {qid: "b" for qid in service.questions}, completed_at=now)

        assert service.assess_readiness("learner-1", now=now).components.tests == 0.0

    def test_readiness_uses_stored_history(self, service, make_attempt, now):
        _answer_five(service, make_attempt)
        for hours in (3, 2, 1):
            service.score_exam(
                "learner-1",
                {qid: "b" for qid in service.questions},
                completed_at=now - timedelta(hours=hours),
            )

        snapshot = service.assess_readiness("learner-1", now=now)

        assert snapshot.components.tests == 100.0
        assert snapshot.components.volume > 0
        assert 0.0 <= snapshot.pass_probability <= 1.0

    def test_objective_breakdown(self, service, make_attempt):
        _answer_five(service, make_attempt)
        breakdown = {s.key: s for s in service.objective_breakdown("learner-1")}
        assert breakdown["1.0"].answered == 5


class TestProgression:
    def test_streak_counted_from_attempt_log(self, service, make_attempt, now):
        _answer_five(service, make_attempt)

        outcome = service.apply_activity(
            "learner-1", {"activity": "first_try_correct", "occurred_at": now.isoformat()}
        )

        assert outcome.xp_delta == 10
        assert outcome.state.current_streak == 1
        assert service.current_streak("learner-1", now=now) == 1
        assert service.current_streak("learner-1", now=now + timedelta(days=3)) == 0

    def test_too_few_questions_no_streak(self, service, make_attempt, now):
        _answer_five(service, make_attempt, count=4)

        outcome = service.apply_activity(
            "learner-1", {"activity": "first_try_correct", "occurred_at": now.isoformat()}
        )

        assert outcome.state.current_streak == 0
        assert service.progression_state("learner-1").total_xp == 10

    def test_questions_on_day_respects_time_zone(self, service, make_attempt, now):
        # 12:00 UTC is 21:00 in Tokyo; 4 hours later is the next Tokyo day
        _answer_five(service, make_attempt)
        later = now + timedelta(hours=4)

        assert service.questions_on_day("learner-1", now, "Asia/Tokyo") == 5
        assert service.questions_on_day("learner-1", later, "Asia/Tokyo") == 0
        assert service.questions_on_day("learner-1", later) == 5
