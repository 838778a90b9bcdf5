"""
Study Module for certification exam prep.

Provides:
- Mastery estimation per objective
- Exam readiness and pass probability
- Performance analytics (objective, difficulty, daily trend)
- StudyService: store-backed facade over the pure components
"""

from certprep.study.analytics import (
    DailyActivity,
    PerformanceSlice,
    daily_activity,
    difficulty_performance,
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
from certprep.study.study_service import StudyService

__all__ = [
    "MasteryEstimator",
    "MasteryConfig",
    "ReadinessAssessor",
    "ReadinessConfig",
    "ReadinessInputs",
    "ReadinessSnapshot",
    "StudyService",
    # Analytics
    "DailyActivity",
    "PerformanceSlice",
    "daily_activity",
    "difficulty_performance",
    "objective_performance",
    "study_days",
    "trend_score",
]
