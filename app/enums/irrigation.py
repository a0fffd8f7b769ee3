"""
Irrigation Enumerations
=======================

Run lifecycle states, trigger reasons and recommendation actions.
"""

from enum import Enum


class RunStatus(str, Enum):
    """
    Irrigation run lifecycle.

    pending -> running -> {completed, failed}
    pending | running -> cancelled
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "RunStatus") -> bool:
        return target in _TRANSITIONS[self]

    def __str__(self) -> str:
        return self.value


_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING, RunStatus.CANCELLED}),
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.CANCELLED: frozenset(),
}


class TriggerReason(str, Enum):
    """Why an irrigation run was created."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    LOW_MOISTURE = "low_moisture"
    AI_RECOMMENDATION = "ai_recommendation"
    WEATHER_FORECAST = "weather_forecast"
    CROP_STAGE = "crop_stage"
    EMERGENCY = "emergency"

    def __str__(self) -> str:
        return self.value


class RecommendationAction(str, Enum):
    """Action suggested by the recommendation engine."""

    IRRIGATE_NOW = "irrigate_now"
    IRRIGATE_SOON = "irrigate_soon"
    SCHEDULE_IRRIGATION = "schedule_irrigation"
    POSTPONE = "postpone"
    NONE = "none"

    @property
    def implies_irrigation(self) -> bool:
        return self in (
            RecommendationAction.IRRIGATE_NOW,
            RecommendationAction.IRRIGATE_SOON,
            RecommendationAction.SCHEDULE_IRRIGATION,
        )

    def __str__(self) -> str:
        return self.value


class RecommendationTiming(str, Enum):
    """Preferred irrigation window."""

    EARLY_MORNING = "early_morning"

    def __str__(self) -> str:
        return self.value
