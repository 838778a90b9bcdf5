"""
Quiz module for answer grading and simulated exam scoring.

Question Types:
- multiple_choice: One correct option
- true_false: One correct option ("true" / "false")
- multi_select: Exact set of correct options
"""

from .exam_scorer import ExamScorer, TestHistorySummary, percentile_rank, summarize_test_history
from .grading import is_correct

__all__ = [
    "ExamScorer",
    "TestHistorySummary",
    "is_correct",
    "percentile_rank",
    "summarize_test_history",
]
