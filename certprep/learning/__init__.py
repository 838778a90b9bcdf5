"""Adaptive question selection."""

from .question_selector import QuestionSelector, Selection, SelectionContext, SelectorConfig

__all__ = [
    "QuestionSelector",
    "Selection",
    "SelectionContext",
    "SelectorConfig",
]
