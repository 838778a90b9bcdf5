"""
Configuration settings for the certprep engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

import sys
from functools import lru_cache
from typing import Literal

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///certprep.db",
        description="SQLAlchemy connection string for the attempt/session store",
    )
    store_max_retries: int = Field(
        default=5,
        description="Optimistic-concurrency retries before giving up on an update",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file path",
    )

    # ========================================
    # Mastery Estimation
    # ========================================
    mastery_window_days: int = Field(
        default=30,
        description="Only attempts from the last N days count toward mastery",
    )
    mastery_max_attempts: int = Field(
        default=50,
        description="Most recent attempts considered per objective",
    )
    mastery_min_attempts: int = Field(
        default=5,
        description="Attempts required before a mastery estimate is produced",
    )
    mastery_reliable_attempts: int = Field(
        default=20,
        description="Attempts required for a reliable confidence band",
    )
    mastery_recency_decay: float = Field(
        default=0.1,
        description="Exponential recency decay per position (weight = exp(-decay * i))",
    )

    # ========================================
    # Spaced Repetition (modified SM-2)
    # ========================================
    sm2_initial_easiness: float = Field(
        default=2.5,
        description="Easiness factor for a never-reviewed question",
    )
    sm2_minimum_easiness: float = Field(
        default=1.3,
        description="Easiness factor floor",
    )
    sm2_failure_penalty: float = Field(
        default=0.2,
        description="Easiness factor decrease on an incorrect attempt",
    )
    sm2_jitter: float = Field(
        default=0.1,
        description="Interval jitter (+/- fraction) to avoid review clustering",
    )

    # ========================================
    # Adaptive Question Selection
    # ========================================
    selector_review_probability: float = Field(
        default=0.3,
        description="Chance of serving a due review instead of a new question",
    )
    selector_accuracy_window: int = Field(
        default=10,
        description="Recent attempts used to steer target difficulty",
    )
    selector_exclude_recent: int = Field(
        default=50,
        description="Most recently shown questions excluded from the pool",
    )
    selector_default_difficulty: float = Field(
        default=3.0,
        description="Starting target difficulty (1-5)",
    )

    # ========================================
    # Readiness
    # ========================================
    readiness_question_target: int = Field(
        default=500,
        description="Distinct questions answered for a full volume component",
    )
    readiness_test_target: int = Field(
        default=5,
        description="Practice tests recommended before sitting the exam",
    )
    readiness_weak_threshold: float = Field(
        default=70.0,
        description="Objectives below this mastery count as weak",
    )

    # ========================================
    # Progression
    # ========================================
    streak_min_questions: int = Field(
        default=5,
        description="Questions per local day for the day to count toward a streak",
    )
    premium_xp_multiplier: float = Field(
        default=1.2,
        description="Flat XP bonus for entitled learners",
    )

    def get_scoring_config(self) -> dict[str, float | int]:
        """Get readiness configuration as a dictionary."""
        return {
            "question_target": self.readiness_question_target,
            "test_target": self.readiness_test_target,
            "weak_threshold": self.readiness_weak_threshold,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Replace loguru's default sink with the engine's console (and file) sinks.

    Args:
        level: Override for Settings.log_level
        log_file: Override for Settings.log_file
    """
    settings = get_settings()
    level = level or settings.log_level
    log_file = log_file or settings.log_file

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB", retention=5)
