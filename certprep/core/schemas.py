"""
Boundary validation for data entering the engine.

Raw dicts from the attempt store or the content store are validated with
Pydantic and converted to the immutable domain models. Any validation
failure is re-raised as InvalidInputError so callers only deal with the
engine's own exception hierarchy.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from certprep.core.errors import BlueprintError, InvalidInputError, UnknownQuestionError
from certprep.core.models import (
    ActivityEvent,
    ActivityType,
    Attempt,
    ExamBlueprint,
    Question,
    QuestionType,
    ensure_utc,
)

# Blueprint weights are published with two decimals; allow for rounding.
WEIGHT_SUM_TOLERANCE = 0.01


class AttemptPayload(BaseModel):
    """Incoming graded answer."""

    learner_id: str = Field(..., min_length=1)
    question_id: str = Field(..., min_length=1)
    objective_id: str = Field(..., min_length=1)
    is_correct: bool
    quality: int = Field(3, ge=1, le=5, description="Response quality (1-5)")
    time_spent_seconds: float = Field(0.0, ge=0, le=3600, description="Max 1 hour per question")
    answered_at: datetime

    @field_validator("answered_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def to_attempt(self) -> Attempt:
        return Attempt(**self.model_dump())


class QuestionPayload(BaseModel):
    """Question metadata from the content store."""

    id: str = Field(..., min_length=1)
    exam_id: str = Field(..., min_length=1)
    objective_id: str = Field(..., min_length=1)
    difficulty: float = Field(3.0, ge=1, le=5, description="Difficulty (1-5)")
    discrimination_index: float | None = Field(None, ge=-1, le=1)
    is_active: bool = True
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    correct_options: list[str] = Field(default_factory=list)

    def to_question(self) -> Question:
        data = self.model_dump()
        data["correct_options"] = frozenset(self.correct_options)
        return Question(**data)


class BlueprintPayload(BaseModel):
    """Exam blueprint as published."""

    exam_id: str = Field(..., min_length=1)
    weights: dict[str, float] = Field(..., description="Objective ID -> weight (0-1)")
    passing_threshold: float = Field(65.0, ge=0, le=100)
    min_questions_per_objective: int = Field(3, ge=1)

    @field_validator("weights")
    @classmethod
    def _check_weight_range(cls, weights: dict[str, float]) -> dict[str, float]:
        if not weights:
            raise ValueError("blueprint must contain at least one objective")
        for objective_id, weight in weights.items():
            if not 0 <= weight <= 1:
                raise ValueError(f"weight for {objective_id} must be within [0, 1], got {weight}")
        return weights

    @model_validator(mode="after")
    def _check_weight_sum(self) -> BlueprintPayload:
        total = sum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"objective weights must sum to 1, got {total:.3f}")
        return self

    def to_blueprint(self) -> ExamBlueprint:
        return ExamBlueprint(**self.model_dump())


class ActivityEventPayload(BaseModel):
    """Incoming progression event."""

    activity: ActivityType
    occurred_at: datetime
    score: float | None = Field(None, ge=0, le=100, description="Test score (0-100)")
    question_count: int | None = Field(None, ge=0)
    entitled: bool = False
    questions_today: int | None = Field(None, ge=0)
    timezone: str = "UTC"

    @field_validator("occurred_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown time zone: {value}") from e
        return value

    def to_event(self) -> ActivityEvent:
        return ActivityEvent(**self.model_dump())


def _field_names(exc: ValidationError) -> list[str]:
    return [".".join(str(part) for part in err["loc"]) for err in exc.errors()]


def parse_attempt(data: Mapping[str, Any]) -> Attempt:
    """Validate a raw attempt dict and return an Attempt."""
    try:
        return AttemptPayload.model_validate(data).to_attempt()
    except ValidationError as e:
        raise InvalidInputError(f"Invalid attempt: {e}", fields=_field_names(e)) from e


def parse_question(data: Mapping[str, Any]) -> Question:
    """Validate raw question metadata and return a Question."""
    try:
        return QuestionPayload.model_validate(data).to_question()
    except ValidationError as e:
        raise InvalidInputError(f"Invalid question: {e}", fields=_field_names(e)) from e


def parse_blueprint(data: Mapping[str, Any]) -> ExamBlueprint:
    """Validate a raw blueprint dict and return an ExamBlueprint."""
    try:
        return BlueprintPayload.model_validate(data).to_blueprint()
    except ValidationError as e:
        raise BlueprintError(f"Invalid blueprint: {e}", fields=_field_names(e)) from e


def parse_activity_event(data: Mapping[str, Any]) -> ActivityEvent:
    """Validate a raw progression event and return an ActivityEvent."""
    try:
        return ActivityEventPayload.model_validate(data).to_event()
    except ValidationError as e:
        raise InvalidInputError(f"Invalid activity event: {e}", fields=_field_names(e)) from e


def validate_blueprint(blueprint: ExamBlueprint) -> ExamBlueprint:
    """Re-check an already constructed blueprint (e.g. one built in code)."""
    return parse_blueprint(
        {
            "exam_id": blueprint.exam_id,
            "weights": dict(blueprint.weights),
            "passing_threshold": blueprint.passing_threshold,
            "min_questions_per_objective": blueprint.min_questions_per_objective,
        }
    )


def validate_attempt_references(
    attempts: Iterable[Attempt],
    questions: Mapping[str, Question],
) -> None:
    """
    Reject attempts that point at unknown questions or the wrong objective.

    Raises:
        UnknownQuestionError: question_id not present in the bank
        InvalidInputError: objective_id disagrees with the question's objective
    """
    for attempt in attempts:
        question = questions.get(attempt.question_id)
        if question is None:
            raise UnknownQuestionError(attempt.question_id)
        if question.objective_id != attempt.objective_id:
            raise InvalidInputError(
                f"Attempt on {attempt.question_id} names objective {attempt.objective_id}, "
                f"question belongs to {question.objective_id}",
                fields=["objective_id"],
            )
