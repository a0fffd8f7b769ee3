"""
Threshold Records
=================
Per-device alert thresholds and per-zone moisture bands, plus the
classification helpers used when presenting a reading.

All records are immutable; updates go through ``with_changes`` which
re-validates the result.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Optional

from app.domain.exceptions import ValidationError
from app.enums import BatteryStatus, MoistureStatus, SignalQuality

# Moisture bands (percent)
MOISTURE_CRITICAL = 30
MOISTURE_WARNING = 60
MOISTURE_OPTIMAL = 80

# Battery bands (percent)
BATTERY_LOW = 20
BATTERY_WARNING = 40
BATTERY_GOOD = 70
BATTERY_CRITICAL = 10

MIN_OFFLINE_TIMEOUT_SECONDS = 60


def _out_of_range(message: str, **detail: Any) -> ValidationError:
    return ValidationError(message, code=ValidationError.OUT_OF_RANGE, detail=detail)


@dataclass(frozen=True)
class DeviceThresholds:
    """Alert thresholds attached to one device."""

    low_battery: float = BATTERY_LOW
    offline_timeout_seconds: int = 300
    moisture_low: float = MOISTURE_CRITICAL
    moisture_high: float = 90
    low_battery_enabled: bool = True
    offline_enabled: bool = True
    moisture_enabled: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.low_battery <= 100:
            raise _out_of_range("low_battery must be within 0..100", low_battery=self.low_battery)
        if not 0 <= self.moisture_low < self.moisture_high <= 100:
            raise _out_of_range(
                "moisture thresholds must satisfy 0 <= low < high <= 100",
                moisture_low=self.moisture_low,
                moisture_high=self.moisture_high,
            )
        if self.offline_timeout_seconds < MIN_OFFLINE_TIMEOUT_SECONDS:
            raise _out_of_range(
                f"offline_timeout_seconds must be at least {MIN_OFFLINE_TIMEOUT_SECONDS}",
                offline_timeout_seconds=self.offline_timeout_seconds,
            )

    def with_changes(self, **changes: Any) -> "DeviceThresholds":
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ValidationError(f"Unknown threshold fields: {sorted(unknown)}")
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DeviceThresholds":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class ZoneThresholds:
    """Moisture bands for one zone: critical < warning < optimal."""

    critical: float = MOISTURE_CRITICAL
    warning: float = MOISTURE_WARNING
    optimal: float = MOISTURE_OPTIMAL

    def __post_init__(self) -> None:
        if not 0 <= self.critical < self.warning < self.optimal <= 100:
            raise _out_of_range(
                "zone thresholds must satisfy 0 <= critical < warning < optimal <= 100",
                critical=self.critical,
                warning=self.warning,
                optimal=self.optimal,
            )

    def classify(self, moisture: float) -> MoistureStatus:
        if moisture <= self.critical:
            return MoistureStatus.CRITICAL
        if moisture <= self.warning:
            return MoistureStatus.LOW
        if moisture <= self.optimal:
            return MoistureStatus.OPTIMAL
        return MoistureStatus.HIGH

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ZoneThresholds":
        if not data:
            return cls()
        return cls(
            critical=data.get("critical", MOISTURE_CRITICAL),
            warning=data.get("warning", MOISTURE_WARNING),
            optimal=data.get("optimal", MOISTURE_OPTIMAL),
        )


DEFAULT_DEVICE_THRESHOLDS = DeviceThresholds()
DEFAULT_ZONE_THRESHOLDS = ZoneThresholds()


def classify_battery(battery: float) -> BatteryStatus:
    if battery <= BATTERY_LOW:
        return BatteryStatus.CRITICAL
    if battery <= BATTERY_WARNING:
        return BatteryStatus.LOW
    if battery <= BATTERY_GOOD:
        return BatteryStatus.GOOD
    return BatteryStatus.EXCELLENT


def classify_signal(signal_strength: Optional[float]) -> SignalQuality:
    """Map RSSI in dBm to a link quality band."""
    if signal_strength is None:
        return SignalQuality.UNKNOWN
    if signal_strength >= -50:
        return SignalQuality.EXCELLENT
    if signal_strength >= -60:
        return SignalQuality.GOOD
    if signal_strength >= -70:
        return SignalQuality.FAIR
    return SignalQuality.POOR
