"""
Core Mastery Module.

Shared mastery vocabulary used by the estimator, the question selector
and the readiness assessor.

Design:
- MasteryLevel: Enum for categorizing mastery percentages
- MasteryRecord: Immutable estimate for one (learner, objective) pair
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class MasteryLevel(str, Enum):
    """
    Mastery level categorization.

    Breakpoints are on the 0-100 mastery percentage.
    """

    INSUFFICIENT_DATA = "Insufficient Data"
    BEGINNER = "Beginner"  # 0-30
    DEVELOPING = "Developing"  # 31-60
    PROFICIENT = "Proficient"  # 61-80
    ADVANCED = "Advanced"  # 81-95
    EXPERT = "Expert"  # 96-100

    @classmethod
    def from_percentage(cls, mastery: float) -> MasteryLevel:
        """
        Convert a 0-100 mastery percentage to a level.

        Args:
            mastery: Mastery percentage between 0 and 100

        Returns:
            Corresponding MasteryLevel
        """
        if mastery < 31:
            return cls.BEGINNER
        elif mastery < 61:
            return cls.DEVELOPING
        elif mastery < 81:
            return cls.PROFICIENT
        elif mastery < 96:
            return cls.ADVANCED
        else:
            return cls.EXPERT

    @property
    def rank(self) -> int:
        """Ordinal position, useful for "at least Proficient" comparisons."""
        return list(MasteryLevel).index(self)


@dataclass(frozen=True)
class MasteryRecord:
    """
    Mastery estimate for one objective.

    Derived on demand from the recent attempt window; never authoritative
    stored state.
    """

    objective_id: str
    mastery: float  # 0-100
    ci_lower: float  # 0-100
    ci_upper: float  # 0-100
    level: MasteryLevel
    sample_size: int
    questions_needed: int

    @property
    def has_sufficient_data(self) -> bool:
        return self.level is not MasteryLevel.INSUFFICIENT_DATA

    @property
    def is_reliable(self) -> bool:
        """True once enough attempts exist for a tight confidence band."""
        return self.has_sufficient_data and self.questions_needed == 0

    @classmethod
    def insufficient(cls, objective_id: str, sample_size: int, minimum: int) -> MasteryRecord:
        """Sentinel returned when there are too few attempts to estimate."""
        return cls(
            objective_id=objective_id,
            mastery=0.0,
            ci_lower=0.0,
            ci_upper=0.0,
            level=MasteryLevel.INSUFFICIENT_DATA,
            sample_size=sample_size,
            questions_needed=max(0, minimum - sample_size),
        )
