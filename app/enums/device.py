"""
Device-related Enumerations
============================

This module contains the enums used to classify soil sensors and their
readings.
"""

from enum import Enum


class QualityBand(str, Enum):
    """Coarse reliability classification of a reading."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @classmethod
    def from_score(cls, score: int) -> "QualityBand":
        if score >= 90:
            return cls.EXCELLENT
        if score >= 75:
            return cls.GOOD
        if score >= 60:
            return cls.FAIR
        return cls.POOR

    @property
    def is_trusted(self) -> bool:
        """Good and excellent readings count towards recommendation confidence."""
        return self in (QualityBand.EXCELLENT, QualityBand.GOOD)

    def __str__(self) -> str:
        return self.value


class MoistureStatus(str, Enum):
    """Moisture band of a calibrated reading."""

    CRITICAL = "critical"
    LOW = "low"
    OPTIMAL = "optimal"
    HIGH = "high"

    def __str__(self) -> str:
        return self.value


class BatteryStatus(str, Enum):
    """Battery band of a device."""

    CRITICAL = "critical"
    LOW = "low"
    GOOD = "good"
    EXCELLENT = "excellent"

    def __str__(self) -> str:
        return self.value


class SignalQuality(str, Enum):
    """Radio link quality derived from RSSI (dBm)."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value
