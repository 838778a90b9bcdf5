"""
Append-only history tables.

- AttemptRow: one graded answer (the attempt log)
- TestResultRow: one finalized simulated exam

Rows here are inserted once and never updated.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from certprep.core.models import Attempt, ObjectiveScore, TestResult, ensure_utc

from .base import Base


class AttemptRow(Base):
    __tablename__ = "attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(Text, nullable=False)
    question_id: Mapped[str] = mapped_column(Text, nullable=False)
    objective_id: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    quality: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-5
    time_spent_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    answered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_attempts_learner_time", "learner_id", "answered_at"),
        Index("idx_attempts_learner_objective", "learner_id", "objective_id", "answered_at"),
        Index("idx_attempts_learner_question", "learner_id", "question_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<AttemptRow(learner={self.learner_id}, question={self.question_id}, "
            f"correct={self.is_correct})>"
        )

    @classmethod
    def from_attempt(cls, attempt: Attempt) -> AttemptRow:
        return cls(
            learner_id=attempt.learner_id,
            question_id=attempt.question_id,
            objective_id=attempt.objective_id,
            is_correct=attempt.is_correct,
            quality=attempt.quality,
            time_spent_seconds=attempt.time_spent_seconds,
            answered_at=ensure_utc(attempt.answered_at),
        )

    def to_attempt(self) -> Attempt:
        return Attempt(
            learner_id=self.learner_id,
            question_id=self.question_id,
            objective_id=self.objective_id,
            is_correct=self.is_correct,
            quality=self.quality,
            time_spent_seconds=self.time_spent_seconds,
            answered_at=ensure_utc(self.answered_at),
        )


class TestResultRow(Base):
    """
    Finalized exam result.

    objective_scores JSON structure:
        [{"objective_id": "1.0", "correct": 8, "total": 10, "weight": 0.5, "reliable": true}]
    """

    __tablename__ = "test_results"
    __test__ = False

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(Text, nullable=False)
    exam_id: Mapped[str] = mapped_column(Text, nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    incorrect_count: Mapped[int] = mapped_column(Integer, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0)
    percentile: Mapped[float | None] = mapped_column(Float)
    objective_scores: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        Index("idx_test_results_learner_exam", "learner_id", "exam_id", "completed_at"),
        Index("idx_test_results_exam", "exam_id"),
    )

    def __repr__(self) -> str:
        return f"<TestResultRow(learner={self.learner_id}, exam={self.exam_id}, score={self.score})>"

    @classmethod
    def from_result(cls, result: TestResult) -> TestResultRow:
        return cls(
            learner_id=result.learner_id,
            exam_id=result.exam_id,
            score=result.score,
            passed=result.passed,
            completed_at=ensure_utc(result.completed_at),
            correct_count=result.correct_count,
            incorrect_count=result.incorrect_count,
            skipped_count=result.skipped_count,
            percentile=result.percentile,
            objective_scores=[
                {
                    "objective_id": s.objective_id,
                    "correct": s.correct,
                    "total": s.total,
                    "weight": s.weight,
                    "reliable": s.reliable,
                }
                for s in result.objective_scores
            ],
        )

    def to_result(self) -> TestResult:
        return TestResult(
            learner_id=self.learner_id,
            exam_id=self.exam_id,
            objective_scores=tuple(ObjectiveScore(**s) for s in self.objective_scores or []),
            score=self.score,
            passed=self.passed,
            completed_at=ensure_utc(self.completed_at),
            correct_count=self.correct_count,
            incorrect_count=self.incorrect_count,
            skipped_count=self.skipped_count,
            percentile=self.percentile,
        )
