"""
Delivery: spaced-repetition scheduling.

Components:
- SM2Scheduler: Modified SM-2 (levels 1-6, EF floor 1.3, +/-10% jitter)
"""

from .scheduler import BASE_INTERVAL_DAYS, SM2Config, SM2Scheduler

__all__ = [
    "SM2Scheduler",
    "SM2Config",
    "BASE_INTERVAL_DAYS",
]
