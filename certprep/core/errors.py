"""
Engine exceptions.

Philosophy:
- Insufficient data is NOT an error; components return sentinel values
- Invalid input is rejected at the boundary, before any computation starts
- Write conflicts surface explicitly so callers never drop an update
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all engine errors."""


class InvalidInputError(EngineError):
    """Raised when an input fails validation at the engine boundary."""

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class BlueprintError(InvalidInputError):
    """Raised when an exam blueprint is malformed."""


class UnknownObjectiveError(InvalidInputError):
    """Raised when an objective ID is not part of the blueprint."""

    def __init__(self, objective_id: str):
        super().__init__(f"Unknown objective: {objective_id}", fields=["objective_id"])
        self.objective_id = objective_id


class UnknownQuestionError(InvalidInputError):
    """Raised when an attempt or answer references a question that does not exist."""

    def __init__(self, question_id: str):
        super().__init__(f"Unknown question: {question_id}", fields=["question_id"])
        self.question_id = question_id


class ConcurrentUpdateError(EngineError):
    """Raised when a read-modify-write keeps losing the race on the stored version."""

    def __init__(self, key: tuple, attempts: int):
        super().__init__(f"Gave up updating {key} after {attempts} conflicting attempts")
        self.key = key
        self.attempts = attempts
