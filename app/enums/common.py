"""
Common Enumerations
====================

This module contains the alert and notification enums shared by the
ingestor, the alert aggregator and the irrigation lifecycle.
"""

from enum import Enum


class AlertSeverity(str, Enum):
    """
    Alert severity levels.
    Used by: reading ingestor, alert aggregator, irrigation lifecycle
    """
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Sort rank, higher is more urgent."""
        return _SEVERITY_RANK[self]

    def __str__(self) -> str:
        return self.value


_SEVERITY_RANK = {
    AlertSeverity.INFO: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.CRITICAL: 2,
}


class AlertType(str, Enum):
    """
    Alert categories raised by the core.
    Used by: reading ingestor, alert aggregator, irrigation lifecycle
    """
    LOW_MOISTURE = "low_moisture"
    HIGH_MOISTURE = "high_moisture"
    LOW_BATTERY = "low_battery"
    SENSOR_ERROR = "sensor_error"
    CALIBRATION_DUE = "calibration_due"
    DEVICE_OFFLINE = "device_offline"
    SYSTEM_ERROR = "system_error"
    FORECAST_UNAVAILABLE = "forecast_unavailable"

    def __str__(self) -> str:
        return self.value


class SubjectType(str, Enum):
    """What an alert is raised against."""
    DEVICE = "device"
    FARM = "farm"

    def __str__(self) -> str:
        return self.value


class Priority(str, Enum):
    """
    Priority levels for recommendations.
    Used by: recommendation engine
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def __str__(self) -> str:
        return self.value


class NotificationChannel(str, Enum):
    """
    Delivery channels for outbound notifications.
    Used by: notification dispatcher
    """
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    IN_APP = "in_app"
    WEBHOOK = "webhook"

    def __str__(self) -> str:
        return self.value
