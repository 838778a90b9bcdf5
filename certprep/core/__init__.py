"""
Core Module - Shared domain models and interfaces.

Components:
- models: Attempts, questions, blueprints, test results, review and progression state
- mastery: MasteryLevel and MasteryRecord
- schemas: Pydantic boundary validation
- errors: Engine exception hierarchy
- locks: Per-key serialization for read-modify-write updates

Design Principle:
Component packages (study/, delivery/, learning/, quiz/, progression/)
import shared concepts from core/ rather than redefining them.
"""

from certprep.core.errors import (
    BlueprintError,
    ConcurrentUpdateError,
    EngineError,
    InvalidInputError,
    UnknownObjectiveError,
    UnknownQuestionError,
)
from certprep.core.mastery import MasteryLevel, MasteryRecord
from certprep.core.models import (
    ActivityEvent,
    ActivityType,
    Attempt,
    ExamBlueprint,
    Objective,
    ObjectiveScore,
    ProgressionState,
    Question,
    QuestionType,
    ReviewSchedule,
    TestResult,
)

__all__ = [
    # Models
    "ActivityEvent",
    "ActivityType",
    "Attempt",
    "ExamBlueprint",
    "Objective",
    "ObjectiveScore",
    "ProgressionState",
    "Question",
    "QuestionType",
    "ReviewSchedule",
    "TestResult",
    # Mastery
    "MasteryLevel",
    "MasteryRecord",
    # Errors
    "EngineError",
    "InvalidInputError",
    "BlueprintError",
    "UnknownObjectiveError",
    "UnknownQuestionError",
    "ConcurrentUpdateError",
]
