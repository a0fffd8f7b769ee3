"""
Enums Module
============

This module provides enumeration types for the AgroSense irrigation core.
Enums ensure type safety and consistency across the codebase.
"""

from app.enums.common import (
    AlertSeverity,
    AlertType,
    NotificationChannel,
    Priority,
    SubjectType,
)
from app.enums.device import (
    BatteryStatus,
    MoistureStatus,
    QualityBand,
    SignalQuality,
)
from app.enums.irrigation import (
    RecommendationAction,
    RecommendationTiming,
    RunStatus,
    TriggerReason,
)

__all__ = [
    # Common
    "AlertSeverity",
    "AlertType",
    "NotificationChannel",
    "Priority",
    "SubjectType",
    # Device
    "BatteryStatus",
    "MoistureStatus",
    "QualityBand",
    "SignalQuality",
    # Irrigation
    "RecommendationAction",
    "RecommendationTiming",
    "RunStatus",
    "TriggerReason",
]
