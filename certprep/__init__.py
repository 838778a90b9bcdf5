"""
certprep: adaptive learning and assessment engine for certification exam prep.

Packages:
- core/: Domain models, boundary validation, errors
- study/: Mastery estimation, readiness, analytics, StudyService facade
- delivery/: Spaced-repetition scheduling
- learning/: Adaptive question selection
- quiz/: Answer grading and exam scoring
- progression/: XP, levels and streaks
- db/: SQLAlchemy stores with optimistic concurrency
"""

__version__ = "0.1.0"
