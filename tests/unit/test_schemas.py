"""
Unit tests for boundary validation.
"""

from datetime import datetime

import pytest

from certprep.core.errors import BlueprintError, InvalidInputError, UnknownQuestionError
from certprep.core.models import ActivityType
from certprep.core.schemas import (
    parse_activity_event,
    parse_attempt,
    parse_blueprint,
    parse_question,
    validate_attempt_references,
)


def _attempt_data(**overrides):
    data = {
        "learner_id": "learner-1",
        "question_id": "q1-0",
        "objective_id": "1.0",
        "is_correct": True,
        "quality": 4,
        "time_spent_seconds": 42.0,
        "answered_at": "2026-03-02T12:00:00+01:00",
    }
    data.update(overrides)
    return data


class TestAttempt:
    def test_valid_attempt_normalized_to_utc(self):
        attempt = parse_attempt(_attempt_data())
        assert attempt.answered_at.utcoffset().total_seconds() == 0
        assert attempt.answered_at.hour == 11

    def test_naive_timestamp_assumed_utc(self):
        attempt = parse_attempt(_attempt_data(answered_at=datetime(2026, 3, 2, 12, 0)))
        assert attempt.answered_at.hour == 12
        assert attempt.answered_at.tzinfo is not None

    @pytest.mark.parametrize(
        "field,value",
        [("quality", 0), ("quality", 6), ("time_spent_seconds", -1), ("time_spent_seconds", 3601), ("learner_id", "")],
    )
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_attempt(_attempt_data(**{field: value}))
        assert field in exc_info.value.fields

    def test_references_checked(self, questions, make_attempt):
        validate_attempt_references([make_attempt(question_id="q1-0", objective_id="1.0")], questions)

        with pytest.raises(UnknownQuestionError):
            validate_attempt_references([make_attempt(question_id="nope")], questions)
        with pytest.raises(InvalidInputError):
            validate_attempt_references([make_attempt(question_id="q1-0", objective_id="2.0")], questions)


class TestBlueprint:
    def test_valid(self):
        blueprint = parse_blueprint({"exam_id": "exam", "weights": {"a": 0.6, "b": 0.4}})
        assert blueprint.objective_ids == ["a", "b"]
        assert blueprint.passing_threshold == 65.0

    def test_rounding_tolerance(self):
        parse_blueprint({"exam_id": "exam", "weights": {"a": 0.333, "b": 0.333, "c": 0.333}})

    @pytest.mark.parametrize(
        "weights",
        [{}, {"a": 0.5}, {"a": 0.7, "b": 0.7}, {"a": 1.5, "b": -0.5}],
    )
    def test_malformed(self, weights):
        with pytest.raises(BlueprintError):
            parse_blueprint({"exam_id": "exam", "weights": weights})

    def test_weights_are_read_only(self):
        blueprint = parse_blueprint({"exam_id": "exam", "weights": {"a": 1.0}})
        with pytest.raises(TypeError):
            blueprint.weights["a"] = 0.5


class TestQuestion:
    def test_valid(self):
        question = parse_question(
            {
                "id": "q",
                "exam_id": "exam",
                "objective_id": "a",
                "difficulty": 4.5,
                "question_type": "multi_select",
                "correct_options": ["a", "c"],
            }
        )
        assert question.correct_options == frozenset({"a", "c"})

    def test_difficulty_range(self):
        with pytest.raises(InvalidInputError):
            parse_question({"id": "q", "exam_id": "exam", "objective_id": "a", "difficulty": 7})


class TestActivityEvent:
    def test_valid(self):
        event = parse_activity_event(
            {
                "activity": "test_complete",
                "occurred_at": "2026-03-02T12:00:00Z",
                "score": 88.0,
                "timezone": "America/New_York",
            }
        )
        assert event.activity is ActivityType.TEST_COMPLETE
        assert event.timezone == "America/New_York"

    def test_unknown_activity(self):
        with pytest.raises(InvalidInputError):
            parse_activity_event({"activity": "login", "occurred_at": "2026-03-02T12:00:00Z"})

    def test_unknown_time_zone(self):
        with pytest.raises(InvalidInputError) as exc_info:
            parse_activity_event(
                {"activity": "weekly_goal", "occurred_at": "2026-03-02T12:00:00Z", "timezone": "Mars/Olympus"}
            )
        assert "timezone" in exc_info.value.fields
