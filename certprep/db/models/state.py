"""
Mutable per-key state tables.

Both tables carry a ``version`` column wired as SQLAlchemy's
``version_id_col``: every UPDATE is issued as
``... WHERE <pk> AND version = :old`` and bumps the version, so a writer
holding a stale row gets StaleDataError instead of overwriting a newer one.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from certprep.core.models import ProgressionState, ReviewSchedule, ensure_utc

from .base import Base


def _utc_or_none(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


class ReviewScheduleRow(Base):
    """SM-2 state for one learner/question pair."""

    __tablename__ = "review_schedules"

    learner_id: Mapped[str] = mapped_column(Text, primary_key=True)
    question_id: Mapped[str] = mapped_column(Text, primary_key=True)
    easiness_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    interval_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # 1-6
    interval_days: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    correct_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_review_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("idx_review_schedules_due", "learner_id", "next_review_at"),)

    def __repr__(self) -> str:
        return (
            f"<ReviewScheduleRow(learner={self.learner_id}, question={self.question_id}, "
            f"level={self.interval_level}, ef={self.easiness_factor})>"
        )

    @classmethod
    def from_schedule(cls, schedule: ReviewSchedule) -> ReviewScheduleRow:
        row = cls(learner_id=schedule.learner_id, question_id=schedule.question_id)
        row.apply(schedule)
        return row

    def apply(self, schedule: ReviewSchedule) -> None:
        """Copy scheduler output onto the row (keys and version untouched)."""
        self.easiness_factor = schedule.easiness_factor
        self.interval_level = schedule.interval_level
        self.interval_days = schedule.interval_days
        self.correct_streak = schedule.correct_streak
        self.next_review_at = _utc_or_none(schedule.next_review_at)
        self.last_reviewed_at = _utc_or_none(schedule.last_reviewed_at)

    def to_schedule(self) -> ReviewSchedule:
        return ReviewSchedule(
            learner_id=self.learner_id,
            question_id=self.question_id,
            easiness_factor=self.easiness_factor,
            interval_level=self.interval_level,
            interval_days=self.interval_days,
            correct_streak=self.correct_streak,
            next_review_at=_utc_or_none(self.next_review_at),
            last_reviewed_at=_utc_or_none(self.last_reviewed_at),
        )


class ProgressionStateRow(Base):
    """
    XP and streak counters for one learner.

    Level is not stored; it is derived from total_xp on read.
    """

    __tablename__ = "progression_states"

    learner_id: Mapped[str] = mapped_column(Text, primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[date | None] = mapped_column(Date)
    streak_freezes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ProgressionStateRow(learner={self.learner_id}, xp={self.total_xp})>"

    @classmethod
    def from_state(cls, state: ProgressionState) -> ProgressionStateRow:
        row = cls(learner_id=state.learner_id)
        row.apply(state)
        return row

    def apply(self, state: ProgressionState) -> None:
        self.total_xp = state.total_xp
        self.current_streak = state.current_streak
        self.longest_streak = state.longest_streak
        self.last_activity_date = state.last_activity_date
        self.streak_freezes = state.streak_freezes

    def to_state(self) -> ProgressionState:
        return ProgressionState(
            learner_id=self.learner_id,
            total_xp=self.total_xp,
            current_streak=self.current_streak,
            longest_streak=self.longest_streak,
            last_activity_date=self.last_activity_date,
            streak_freezes=self.streak_freezes,
        )
