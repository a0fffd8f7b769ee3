"""
Soil Reading Value Object
=========================
Immutable value object for one accepted telemetry sample, plus the quality
scoring applied at ingestion time.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from app.enums import AlertSeverity, AlertType, QualityBand
from app.domain.thresholds import classify_battery, classify_signal
from app.utils.time import coerce_datetime, to_iso

# Quality score deductions
WEAK_SIGNAL_DBM = -80
FAIR_SIGNAL_DBM = -70
WEAK_SIGNAL_PENALTY = 20
FAIR_SIGNAL_PENALTY = 10
LOW_BATTERY_PCT = 20
MEDIUM_BATTERY_PCT = 40
LOW_BATTERY_PENALTY = 15
MEDIUM_BATTERY_PENALTY = 5
MISSING_FIELD_PENALTY = 5


def score_quality(
    *,
    battery: float,
    signal_strength: Optional[float] = None,
    temperature: Optional[float] = None,
    humidity: Optional[float] = None,
) -> Tuple[int, QualityBand]:
    """Score a sample's reliability from 100 downwards and band it."""
    score = 100
    if signal_strength is not None:
        if signal_strength < WEAK_SIGNAL_DBM:
            score -= WEAK_SIGNAL_PENALTY
        elif signal_strength < FAIR_SIGNAL_DBM:
            score -= FAIR_SIGNAL_PENALTY

    if battery < LOW_BATTERY_PCT:
        score -= LOW_BATTERY_PENALTY
    elif battery < MEDIUM_BATTERY_PCT:
        score -= MEDIUM_BATTERY_PENALTY

    if temperature is None:
        score -= MISSING_FIELD_PENALTY
    if humidity is None:
        score -= MISSING_FIELD_PENALTY

    return score, QualityBand.from_score(score)


@dataclass(frozen=True)
class ReadingAlert:
    """Alert embedded in a reading at ingestion time."""

    alert_type: AlertType
    severity: AlertSeverity
    message: str
    acknowledged: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": str(self.alert_type),
            "severity": str(self.severity),
            "message": self.message,
            "acknowledged": self.acknowledged,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReadingAlert":
        return cls(
            alert_type=AlertType(data["type"]),
            severity=AlertSeverity(data["severity"]),
            message=data.get("message", ""),
            acknowledged=bool(data.get("acknowledged", False)),
        )


@dataclass(frozen=True)
class Reading:
    """
    One accepted soil sample.

    ``moisture`` is always the calibrated percentage; ``moisture_raw`` keeps
    the probe output when the device sent one.
    """

    device_id: str
    farm_id: str
    zone_id: str
    moisture: float
    battery: float
    quality_score: int
    quality_band: QualityBand
    timestamp: datetime
    moisture_raw: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    signal_strength: Optional[float] = None
    alerts: Tuple[ReadingAlert, ...] = field(default_factory=tuple)
    reading_id: Optional[int] = None

    def with_id(self, reading_id: int) -> "Reading":
        return replace(self, reading_id=reading_id)

    def snapshot(self) -> Dict[str, Any]:
        """Compact copy stored on the device as its last reading."""
        return {
            "reading_id": self.reading_id,
            "moisture": self.moisture,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "battery": self.battery,
            "quality_band": str(self.quality_band),
            "timestamp": to_iso(self.timestamp),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reading_id": self.reading_id,
            "device_id": self.device_id,
            "farm_id": self.farm_id,
            "zone_id": self.zone_id,
            "moisture": self.moisture,
            "moisture_raw": self.moisture_raw,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "battery": self.battery,
            "battery_status": str(classify_battery(self.battery)),
            "signal_strength": self.signal_strength,
            "signal_quality": str(classify_signal(self.signal_strength)),
            "quality_score": self.quality_score,
            "quality_band": str(self.quality_band),
            "alerts": [alert.to_dict() for alert in self.alerts],
            "timestamp": to_iso(self.timestamp),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any], alerts: Tuple[ReadingAlert, ...] = ()) -> "Reading":
        return cls(
            reading_id=row.get("reading_id"),
            device_id=row["device_id"],
            farm_id=row["farm_id"],
            zone_id=row["zone_id"],
            moisture=row["moisture"],
            moisture_raw=row.get("moisture_raw"),
            temperature=row.get("temperature"),
            humidity=row.get("humidity"),
            battery=row["battery"],
            signal_strength=row.get("signal_strength"),
            quality_score=row["quality_score"],
            quality_band=QualityBand(row["quality_band"]),
            alerts=tuple(alerts),
            timestamp=coerce_datetime(row["timestamp"]),
        )
