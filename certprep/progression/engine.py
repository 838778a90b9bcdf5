"""
Progression Engine.

Turns one activity event into an XP award and an updated streak:

    xp_delta = round(base_xp[activity] * score_bonus * session_bonus * entitlement_bonus)

Level is never stored; it is recomputed from total XP on demand, so a
level-up is simply "level_for_xp(after) > level_for_xp(before)".
Notifications (level-ups, streak milestones) are returned as requests
for an external collaborator; nothing is sent from here.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from loguru import logger

from certprep.core.errors import InvalidInputError
from certprep.core.models import ActivityEvent, ProgressionState, local_day
from certprep.progression.streaks import advance_streak, milestones_crossed
from certprep.progression.xp import (
    BASE_XP,
    level_for_xp,
    score_multiplier,
    session_length_multiplier,
    xp_to_next_level,
)


class NotificationKind(str, Enum):
    LEVEL_UP = "level_up"
    STREAK_MILESTONE = "streak_milestone"


@dataclass(frozen=True)
class NotificationRequest:
    """Side effect for the notification collaborator to perform."""

    kind: NotificationKind
    learner_id: str
    message: str
    levels: tuple[int, ...] = ()
    milestone: int | None = None


@dataclass
class ProgressionConfig:
    streak_min_questions: int = 5
    entitlement_multiplier: float = 1.2

    @classmethod
    def from_settings(cls, settings=None) -> ProgressionConfig:
        from certprep.config import get_settings

        settings = settings or get_settings()
        return cls(
            streak_min_questions=settings.streak_min_questions,
            entitlement_multiplier=settings.premium_xp_multiplier,
        )


@dataclass(frozen=True)
class ProgressionOutcome:
    """Result of applying one event."""

    state: ProgressionState
    xp_delta: int
    leveled_up: bool
    previous_level: int
    notifications: tuple[NotificationRequest, ...] = ()

    @property
    def level(self) -> int:
        return self.state.level

    @property
    def xp_to_next_level(self) -> int:
        return xp_to_next_level(self.state.total_xp)


class ProgressionEngine:
    """
    Pure XP/streak state transitions.

    ``apply`` never mutates its input; persisting the returned state
    (and serializing concurrent updates for one learner) is the caller's
    job, see ``certprep.db.stores.ProgressionStore``.
    """

    def __init__(self, config: ProgressionConfig | None = None):
        self.config = config or ProgressionConfig()

    def multiplier(self, event: ActivityEvent) -> float:
        """Stacked XP multiplier for an event."""
        multiplier = score_multiplier(event.score) * session_length_multiplier(event.question_count)
        if event.entitled:
            multiplier *= self.config.entitlement_multiplier
        return multiplier

    def xp_for(self, event: ActivityEvent) -> int:
        return max(0, int(round(BASE_XP[event.activity] * self.multiplier(event))))

    def counts_for_streak(self, event: ActivityEvent) -> bool:
        return (
            event.questions_today is not None
            and event.questions_today >= self.config.streak_min_questions
        )

    def apply(self, state: ProgressionState, event: ActivityEvent) -> ProgressionOutcome:
        """
        Apply one activity event.

        Args:
            state: Learner's current progression state
            event: Qualifying activity

        Returns:
            ProgressionOutcome with the new state, XP delta and notifications
        """
        xp_delta = self.xp_for(event)
        previous_level = level_for_xp(state.total_xp)
        new_state = replace(state, total_xp=state.total_xp + xp_delta)
        notifications: list[NotificationRequest] = []

        if self.counts_for_streak(event):
            day = local_day(event.occurred_at, event.timezone)
            update = advance_streak(state, day, allow_freezes=event.entitled)
            if update.extended:
                new_state = replace(
                    new_state,
                    current_streak=update.current,
                    longest_streak=update.longest,
                    last_activity_date=update.last_activity_date,
                    streak_freezes=update.freezes_remaining,
                )
                if update.freezes_used:
                    logger.info(
                        f"Learner {state.learner_id} used {update.freezes_used} streak freeze(s)"
                    )
                # A restart to 1 never crosses a milestone; compare against the run it extends.
                previous_run = state.current_streak if update.current > 1 else 0
                for milestone in milestones_crossed(previous_run, update.current):
                    notifications.append(
                        NotificationRequest(
                            kind=NotificationKind.STREAK_MILESTONE,
                            learner_id=state.learner_id,
                            message=f"{milestone}-day study streak!",
                            milestone=milestone,
                        )
                    )

        new_level = new_state.level
        leveled_up = new_level > previous_level
        if leveled_up:
            levels = tuple(range(previous_level + 1, new_level + 1))
            notifications.append(
                NotificationRequest(
                    kind=NotificationKind.LEVEL_UP,
                    learner_id=state.learner_id,
                    message=f"Reached level {new_level}",
                    levels=levels,
                )
            )
            logger.info(f"Learner {state.learner_id} leveled up: {previous_level} -> {new_level}")

        logger.debug(
            f"{event.activity.value} for {state.learner_id}: +{xp_delta} XP "
            f"(total {new_state.total_xp}, streak {new_state.current_streak})"
        )
        return ProgressionOutcome(
            state=new_state,
            xp_delta=xp_delta,
            leveled_up=leveled_up,
            previous_level=previous_level,
            notifications=tuple(notifications),
        )

    def grant_streak_freezes(
        self,
        state: ProgressionState,
        count: int,
        entitled: bool,
    ) -> ProgressionState:
        """Add streak-freeze credits for an entitled learner."""
        if count < 0:
            raise InvalidInputError("Freeze credit count must be non-negative", fields=["count"])
        if not entitled:
            raise InvalidInputError(
                "Streak freezes require an entitlement", fields=["entitled"]
            )
        return replace(state, streak_freezes=state.streak_freezes + count)
