"""
Readiness Assessor.

Blends five signals into a single exam-readiness percentage:

    40% mastery   = min(100, average objective mastery * 1.2)
    35% tests     = average of recent practice tests (needs >= 3, else 0)
    10% volume    = min(100, 100 * questions answered / 500)
    10% trend     = externally supplied 0-100 trend score
     5% coverage  = 100 * (1 - weak objectives / total objectives)

and estimates pass probability with a fixed-coefficient logistic model.
The coefficients are constants; there is no training procedure here.

A missing signal degrades only its own component to 0.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from certprep.core.mastery import MasteryRecord
from certprep.core.models import TestResult, clamp, ensure_utc

# Logistic model over [readiness, avg test score, study days, questions]
PASS_COEFFICIENTS = (2.1, 1.8, 0.5, 0.3)
PASS_INTERCEPT = -1.2


class ReadinessConfidence(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class RecommendationKind(str, Enum):
    WEAK_OBJECTIVES = "weak_objectives"
    MORE_TESTS = "more_practice_tests"
    MORE_QUESTIONS = "more_questions"


@dataclass
class ReadinessConfig:
    """Weights and targets for the readiness blend."""

    weight_mastery: float = 0.40
    weight_tests: float = 0.35
    weight_volume: float = 0.10
    weight_trend: float = 0.10
    weight_coverage: float = 0.05
    mastery_boost: float = 1.2
    min_tests: int = 3
    recent_tests: int = 5
    test_target: int = 5
    question_target: int = 500
    weak_threshold: float = 70.0
    weak_recommendation_below: float = 80.0
    high_threshold: float = 85.0
    medium_threshold: float = 70.0
    study_days_target: int = 90
    question_feature_target: int = 1000

    @classmethod
    def from_settings(cls, settings=None) -> ReadinessConfig:
        from certprep.config import get_settings

        scoring = (settings or get_settings()).get_scoring_config()
        return cls(
            test_target=scoring["test_target"],
            question_target=scoring["question_target"],
            weak_threshold=scoring["weak_threshold"],
        )


@dataclass(frozen=True)
class Recommendation:
    kind: RecommendationKind
    message: str
    objective_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReadinessComponents:
    """Unweighted 0-100 component scores."""

    mastery: float
    tests: float
    volume: float
    trend: float
    coverage: float


@dataclass(frozen=True)
class ReadinessSnapshot:
    """Derived readiness assessment; recomputed per request."""

    readiness: float  # 0-100
    confidence: ReadinessConfidence
    ready: bool
    pass_probability: float  # 0-1
    recommendations: tuple[Recommendation, ...]
    components: ReadinessComponents
    weak_objectives: tuple[str, ...] = ()

    @property
    def status(self) -> str:
        return readiness_status(self.readiness)


@dataclass
class ReadinessInputs:
    """Pre-fetched inputs for one assessment."""

    objective_ids: Sequence[str]
    mastery: Mapping[str, MasteryRecord] = field(default_factory=dict)
    recent_tests: Sequence[TestResult] = ()
    questions_answered: int = 0
    trend_score: float | None = None
    study_days: int = 0


def readiness_status(readiness: float) -> str:
    """Coarse dashboard label for a readiness percentage."""
    if readiness >= 80:
        return "ready"
    elif readiness >= 60:
        return "almost_ready"
    elif readiness >= 40:
        return "progressing"
    return "needs_work"


def sigmoid(x: float) -> float:
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


class ReadinessAssessor:
    """Computes ReadinessSnapshots from pre-fetched learner data."""

    def __init__(self, config: ReadinessConfig | None = None):
        self.config = config or ReadinessConfig()

    # =========================================================================
    # Components
    # =========================================================================

    def objective_mastery(self, inputs: ReadinessInputs) -> dict[str, float]:
        """Mastery per blueprint objective; missing records count as 0."""
        result = {}
        for obj_id in inputs.objective_ids:
            record = inputs.mastery.get(obj_id)
            result[obj_id] = clamp(record.mastery, 0.0, 100.0) if record else 0.0
        return result

    def _latest_tests(self, tests: Sequence[TestResult]) -> list[TestResult]:
        ordered = sorted(tests, key=lambda t: ensure_utc(t.completed_at), reverse=True)
        return ordered[: self.config.recent_tests]

    def average_test_score(self, tests: Sequence[TestResult]) -> float:
        latest = self._latest_tests(tests)
        if not latest:
            return 0.0
        return clamp(sum(t.score for t in latest) / len(latest), 0.0, 100.0)

    def components(self, inputs: ReadinessInputs) -> tuple[ReadinessComponents, list[str], float]:
        """
        Compute the five component scores.

        Returns:
            Tuple of (components, weak objective IDs, average mastery)
        """
        cfg = self.config
        per_objective = self.objective_mastery(inputs)
        avg_mastery = sum(per_objective.values()) / len(per_objective) if per_objective else 0.0
        weak = [obj_id for obj_id, m in per_objective.items() if m < cfg.weak_threshold]

        tests = self._latest_tests(inputs.recent_tests)
        test_component = self.average_test_score(tests) if len(tests) >= cfg.min_tests else 0.0

        coverage = 100.0 * (1 - len(weak) / len(per_objective)) if per_objective else 0.0

        components = ReadinessComponents(
            mastery=clamp(avg_mastery * cfg.mastery_boost, 0.0, 100.0),
            tests=test_component,
            volume=clamp(100.0 * inputs.questions_answered / cfg.question_target, 0.0, 100.0),
            trend=clamp(inputs.trend_score, 0.0, 100.0) if inputs.trend_score is not None else 0.0,
            coverage=clamp(coverage, 0.0, 100.0),
        )
        return components, weak, avg_mastery

    def blend(self, components: ReadinessComponents) -> float:
        cfg = self.config
        total = (
            components.mastery * cfg.weight_mastery
            + components.tests * cfg.weight_tests
            + components.volume * cfg.weight_volume
            + components.trend * cfg.weight_trend
            + components.coverage * cfg.weight_coverage
        )
        return round(clamp(total, 0.0, 100.0), 1)

    # =========================================================================
    # Recommendations & prediction
    # =========================================================================

    def recommendations(
        self,
        inputs: ReadinessInputs,
        weak: list[str],
        avg_mastery: float,
    ) -> list[Recommendation]:
        cfg = self.config
        recs = []

        if avg_mastery < cfg.weak_recommendation_below and weak:
            recs.append(
                Recommendation(
                    kind=RecommendationKind.WEAK_OBJECTIVES,
                    message=f"Focus on weak objectives: {', '.join(weak)}",
                    objective_ids=tuple(weak),
                )
            )

        tests_taken = len(inputs.recent_tests)
        if tests_taken < cfg.test_target:
            recs.append(
                Recommendation(
                    kind=RecommendationKind.MORE_TESTS,
                    message=f"Take {cfg.test_target - tests_taken} more practice test(s)",
                )
            )

        if inputs.questions_answered < cfg.question_target:
            recs.append(
                Recommendation(
                    kind=RecommendationKind.MORE_QUESTIONS,
                    message=(
                        f"Answer {cfg.question_target - inputs.questions_answered} more "
                        f"question(s) to reach {cfg.question_target}"
                    ),
                )
            )
        return recs

    def pass_probability(
        self,
        readiness: float,
        avg_test_score: float,
        study_days: int,
        questions_answered: int,
    ) -> float:
        """Logistic pass-probability estimate, clamped to [0, 1]."""
        cfg = self.config
        features = (
            clamp(readiness / 100.0, 0.0, 1.0),
            clamp(avg_test_score / 100.0, 0.0, 1.0),
            min(max(study_days, 0) / cfg.study_days_target, 1.0),
            min(max(questions_answered, 0) / cfg.question_feature_target, 1.0),
        )
        z = PASS_INTERCEPT + sum(c * f for c, f in zip(PASS_COEFFICIENTS, features))
        return round(clamp(sigmoid(z), 0.0, 1.0), 4)

    def assess(self, inputs: ReadinessInputs) -> ReadinessSnapshot:
        """
        Assess exam readiness.

        Args:
            inputs: Mastery records, recent tests, volume and trend signals

        Returns:
            ReadinessSnapshot
        """
        cfg = self.config
        components, weak, avg_mastery = self.components(inputs)
        readiness = self.blend(components)
        recs = self.recommendations(inputs, weak, avg_mastery)

        if readiness >= cfg.high_threshold:
            confidence, ready = ReadinessConfidence.HIGH, True
        elif readiness >= cfg.medium_threshold:
            confidence, ready = ReadinessConfidence.MEDIUM, len(recs) <= 1
        else:
            confidence, ready = ReadinessConfidence.LOW, False

        probability = self.pass_probability(
            readiness,
            self.average_test_score(inputs.recent_tests),
            inputs.study_days,
            inputs.questions_answered,
        )

        logger.debug(
            f"Readiness {readiness} ({confidence.value}) p_pass={probability} "
            f"components={components}"
        )
        return ReadinessSnapshot(
            readiness=readiness,
            confidence=confidence,
            ready=ready,
            pass_probability=probability,
            recommendations=tuple(recs),
            components=components,
            weak_objectives=tuple(weak),
        )
