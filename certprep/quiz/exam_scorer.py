"""
Exam Scorer for simulated certification tests.

Scores a completed answer set against the official blueprint:

    objective_score = 100 * correct / total           (per answered objective)
    weighted_score  = sum(score * weight) / sum(weight of answered objectives)

Objectives with no questions in the set drop out of BOTH sums, so an
unanswered objective can never drag the score down.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from certprep.core.errors import UnknownObjectiveError, UnknownQuestionError
from certprep.core.models import (
    ExamBlueprint,
    ObjectiveScore,
    Question,
    TestResult,
    clamp,
    ensure_utc,
    utc_now,
)
from certprep.core.schemas import validate_blueprint
from certprep.quiz.grading import SelectedAnswer, is_correct


def percentile_rank(score: float, distribution: Sequence[float]) -> float | None:
    """
    Percentile of ``score`` within a historical score distribution.

    Uses the mid-rank convention: 100 * (below + 0.5 * equal) / n.

    Returns:
        Percentile 0-100, or None for an empty distribution
    """
    if not distribution:
        return None
    ordered = sorted(distribution)
    below = bisect_left(ordered, score)
    equal = bisect_right(ordered, score) - below
    return round(clamp(100.0 * (below + 0.5 * equal) / len(ordered), 0.0, 100.0), 1)


@dataclass
class _Tally:
    correct: int = 0
    total: int = 0


class ExamScorer:
    """
    Scores simulated exams against a blueprint.

    Validation happens before any scoring: an unknown question or an
    objective outside the blueprint rejects the whole answer set.
    """

    def __init__(self, blueprint: ExamBlueprint):
        self.blueprint = validate_blueprint(blueprint)

    def _tally(
        self,
        answers: Mapping[str, SelectedAnswer],
        questions: Mapping[str, Question],
    ) -> tuple[dict[str, _Tally], int, int, int]:
        # Validate everything first; never partially compute.
        for question_id in answers:
            question = questions.get(question_id)
            if question is None:
                raise UnknownQuestionError(question_id)
            if question.objective_id not in self.blueprint.weights:
                raise UnknownObjectiveError(question.objective_id)

        tallies: dict[str, _Tally] = {}
        correct = incorrect = skipped = 0
        for question_id, selected in answers.items():
            question = questions[question_id]
            tally = tallies.setdefault(question.objective_id, _Tally())
            tally.total += 1
            if selected is None:
                skipped += 1
            elif is_correct(question, selected):
                tally.correct += 1
                correct += 1
            else:
                incorrect += 1
        return tallies, correct, incorrect, skipped

    def weighted_score(self, objective_scores: Sequence[ObjectiveScore]) -> float:
        """Weighted average over objectives actually present, one decimal."""
        present = [s for s in objective_scores if s.total > 0 and s.weight > 0]
        total_weight = sum(s.weight for s in present)
        if total_weight <= 0:
            return 0.0
        score = sum(s.percentage * s.weight for s in present) / total_weight
        return round(clamp(score, 0.0, 100.0), 1)

    def score(
        self,
        learner_id: str,
        answers: Mapping[str, SelectedAnswer],
        questions: Mapping[str, Question],
        score_distribution: Sequence[float] | None = None,
        completed_at: datetime | None = None,
    ) -> TestResult:
        """
        Score a completed exam.

        Args:
            learner_id: Learner who sat the exam
            answers: Question ID -> selected answer (None = skipped)
            questions: Question bank entries for at least every answered question
            score_distribution: Historical weighted scores for percentile rank
            completed_at: Finalization time (defaults to UTC now)

        Returns:
            Finalized TestResult
        """
        tallies, correct, incorrect, skipped = self._tally(answers, questions)

        objective_scores = tuple(
            ObjectiveScore(
                objective_id=obj_id,
                correct=tallies[obj_id].correct,
                total=tallies[obj_id].total,
                weight=weight,
                reliable=tallies[obj_id].total >= self.blueprint.min_questions_per_objective,
            )
            for obj_id, weight in self.blueprint.weights.items()
            if obj_id in tallies
        )

        weighted = self.weighted_score(objective_scores)
        passed = weighted >= self.blueprint.passing_threshold
        percentile = percentile_rank(weighted, score_distribution or ())

        result = TestResult(
            learner_id=learner_id,
            exam_id=self.blueprint.exam_id,
            objective_scores=objective_scores,
            score=weighted,
            passed=passed,
            completed_at=ensure_utc(completed_at or utc_now()),
            correct_count=correct,
            incorrect_count=incorrect,
            skipped_count=skipped,
            percentile=percentile,
        )

        if result.unreliable_objectives:
            logger.info(
                f"Exam {self.blueprint.exam_id}: objectives below "
                f"{self.blueprint.min_questions_per_objective} questions: {result.unreliable_objectives}"
            )
        logger.debug(
            f"Scored exam {self.blueprint.exam_id} for {learner_id}: "
            f"{weighted} ({'pass' if passed else 'fail'})"
        )
        return result


@dataclass(frozen=True)
class TestHistorySummary:
    """Aggregate view of a learner's completed tests."""

    __test__ = False

    tests_taken: int
    tests_passed: int
    best_score: float
    average_score: float
    last_test_at: datetime | None


def summarize_test_history(results: Sequence[TestResult]) -> TestHistorySummary:
    """Roll up completed tests into the dashboard summary."""
    if not results:
        return TestHistorySummary(0, 0, 0.0, 0.0, None)
    scores = [r.score for r in results]
    return TestHistorySummary(
        tests_taken=len(results),
        tests_passed=sum(1 for r in results if r.passed),
        best_score=max(scores),
        average_score=round(sum(scores) / len(scores), 1),
        last_test_at=max(ensure_utc(r.completed_at) for r in results),
    )
