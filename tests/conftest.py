"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from certprep.core.models import Attempt, ExamBlueprint, Question, QuestionType

PROJECT_ROOT = Path(__file__).parent.parent

EXAM_ID = "ccna-200-301"
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (pure computations)")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """Fixed reference time."""
    return NOW


@pytest.fixture
def rng():
    """Seeded randomness source."""
    return random.Random(1234)


@pytest.fixture
def blueprint():
    """Three-objective blueprint."""
    return ExamBlueprint(
        exam_id=EXAM_ID,
        weights={"1.0": 0.2, "2.0": 0.3, "3.0": 0.5},
        passing_threshold=65.0,
    )


@pytest.fixture
def questions():
    """Provide a small question bank: 4 questions per objective, difficulties 2-5."""
    bank = {}
    for obj in ("1.0", "2.0", "3.0"):
        for i, difficulty in enumerate((2.0, 3.0, 4.0, 5.0)):
            qid = f"q{obj[0]}-{i}"
            bank[qid] = Question(
                id=qid,
                exam_id=EXAM_ID,
                objective_id=obj,
                difficulty=difficulty,
                discrimination_index=0.4 if i % 2 == 0 else 0.1,
                question_type=QuestionType.MULTIPLE_CHOICE,
                correct_options=frozenset({"b"}),
            )
    return bank


@pytest.fixture
def make_attempt():
    """Factory for attempts; ``minutes_ago`` counts back from NOW."""

    def _make(
        is_correct=True,
        question_id="q1-0",
        objective_id="1.0",
        learner_id="learner-1",
        quality=4,
        minutes_ago=0,
        time_spent_seconds=30.0,
    ):
        return Attempt(
            learner_id=learner_id,
            question_id=question_id,
            objective_id=objective_id,
            is_correct=is_correct,
            quality=quality,
            time_spent_seconds=time_spent_seconds,
            answered_at=NOW - timedelta(minutes=minutes_ago),
        )

    return _make
