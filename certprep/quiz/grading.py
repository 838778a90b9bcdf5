"""
Answer grading by question type.

- multiple_choice / true_false: the selected option must be one of the correct options
- multi_select: the selected set must equal the correct set exactly
- None: skipped, never correct
"""

from __future__ import annotations

import json
from collections.abc import Collection

from certprep.core.errors import InvalidInputError
from certprep.core.models import Question, QuestionType

SelectedAnswer = str | Collection[str] | None


def _as_selection(selected: str | Collection[str]) -> set[str]:
    """Normalize a multi-select answer (collection or JSON list string)."""
    if isinstance(selected, str):
        try:
            parsed = json.loads(selected)
        except json.JSONDecodeError:
            return {selected}
        if isinstance(parsed, list):
            return {str(item) for item in parsed}
        return {str(parsed)}
    return {str(item) for item in selected}


def is_correct(question: Question, selected: SelectedAnswer) -> bool:
    """
    Grade one answer against the question's correct options.

    Raises:
        InvalidInputError: a single-answer question received several options
    """
    if selected is None:
        return False

    if question.question_type is QuestionType.MULTI_SELECT:
        return _as_selection(selected) == set(question.correct_options)

    if not isinstance(selected, str):
        options = list(selected)
        if len(options) != 1:
            raise InvalidInputError(
                f"Question {question.id} accepts a single option, got {len(options)}",
                fields=["selected_answer"],
            )
        selected = str(options[0])
    return selected in question.correct_options
