"""
Farm, Zone and Device Entities
==============================
A farm owns zones; each device reports for exactly one zone. The farm is the
unit of irrigation mutual exclusion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.domain.sensors.calibration import MoistureCalibration
from app.domain.thresholds import DeviceThresholds, ZoneThresholds
from app.enums import NotificationChannel
from app.utils.time import coerce_datetime, to_iso, utc_now

DEFAULT_TARGET_MOISTURE = 80.0
DEFAULT_FLOW_RATE_PER_ZONE = 5.0  # L/min


@dataclass(frozen=True)
class AutoIrrigationConfig:
    """Whether recommendations may create runs without a manual trigger."""

    enabled: bool = False
    min_confidence: float = 0.7

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "min_confidence": self.min_confidence}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AutoIrrigationConfig":
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            min_confidence=float(data.get("min_confidence", 0.7)),
        )


@dataclass
class Zone:
    zone_id: str
    name: str = ""
    area: Optional[float] = None
    crop_type: Optional[str] = None
    target_moisture: float = DEFAULT_TARGET_MOISTURE
    thresholds: ZoneThresholds = field(default_factory=ZoneThresholds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "name": self.name,
            "area": self.area,
            "crop_type": self.crop_type,
            "target_moisture": self.target_moisture,
            "thresholds": self.thresholds.to_dict(),
        }


@dataclass
class Farm:
    farm_id: str
    name: str
    latitude: float
    longitude: float
    area: Optional[float] = None
    target_moisture: float = DEFAULT_TARGET_MOISTURE
    flow_rate_per_zone: float = DEFAULT_FLOW_RATE_PER_ZONE
    auto_irrigation: AutoIrrigationConfig = field(default_factory=AutoIrrigationConfig)
    recipients: Tuple[str, ...] = ()
    channels: Tuple[NotificationChannel, ...] = (NotificationChannel.IN_APP,)
    zones: Tuple[Zone, ...] = ()
    total_irrigation_events: int = 0
    total_water_used: float = 0.0
    last_irrigation_at: Optional[datetime] = None
    active: bool = True
    created_at: datetime = field(default_factory=utc_now)

    def zone_ids(self) -> List[str]:
        return [zone.zone_id for zone in self.zones]

    def get_zone(self, zone_id: str) -> Optional[Zone]:
        for zone in self.zones:
            if zone.zone_id == zone_id:
                return zone
        return None

    def missing_zones(self, zone_ids: Iterable[str]) -> List[str]:
        """Return the requested zone ids that this farm does not own."""
        owned = set(self.zone_ids())
        return [zone_id for zone_id in zone_ids if zone_id not in owned]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "farm_id": self.farm_id,
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "area": self.area,
            "target_moisture": self.target_moisture,
            "flow_rate_per_zone": self.flow_rate_per_zone,
            "auto_irrigation": self.auto_irrigation.to_dict(),
            "recipients": list(self.recipients),
            "channels": [str(channel) for channel in self.channels],
            "zones": [zone.to_dict() for zone in self.zones],
            "statistics": {
                "total_irrigation_events": self.total_irrigation_events,
                "total_water_used": self.total_water_used,
                "last_irrigation_at": to_iso(self.last_irrigation_at),
            },
            "active": self.active,
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any], zone_rows: Iterable[Dict[str, Any]] = ()) -> "Farm":
        zones = tuple(
            Zone(
                zone_id=z["zone_id"],
                name=z.get("name") or "",
                area=z.get("area"),
                crop_type=z.get("crop_type"),
                target_moisture=z.get("target_moisture") or DEFAULT_TARGET_MOISTURE,
                thresholds=ZoneThresholds.from_dict(z.get("thresholds")),
            )
            for z in zone_rows
        )
        return cls(
            farm_id=row["farm_id"],
            name=row["name"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            area=row.get("area"),
            target_moisture=row.get("target_moisture") or DEFAULT_TARGET_MOISTURE,
            flow_rate_per_zone=row.get("flow_rate_per_zone") or DEFAULT_FLOW_RATE_PER_ZONE,
            auto_irrigation=AutoIrrigationConfig.from_dict(row.get("auto_irrigation")),
            recipients=tuple(row.get("recipients") or ()),
            channels=tuple(NotificationChannel(c) for c in (row.get("channels") or ("in_app",))),
            zones=zones,
            total_irrigation_events=row.get("total_irrigation_events") or 0,
            total_water_used=row.get("total_water_used") or 0.0,
            last_irrigation_at=coerce_datetime(row.get("last_irrigation_at")),
            active=bool(row.get("active", 1)),
            created_at=coerce_datetime(row.get("created_at")) or utc_now(),
        )


@dataclass
class Device:
    """A soil probe registered to one farm zone. Never deleted, only deactivated."""

    device_id: str
    farm_id: str
    zone_id: str
    name: str = ""
    calibration: MoistureCalibration = field(default_factory=MoistureCalibration)
    thresholds: DeviceThresholds = field(default_factory=DeviceThresholds)
    last_seen_at: Optional[datetime] = None
    signal_strength: Optional[float] = None
    total_readings: int = 0
    last_reading: Optional[Dict[str, Any]] = None
    active: bool = True
    created_at: datetime = field(default_factory=utc_now)

    def seconds_since_seen(self, now: Optional[datetime] = None) -> float:
        now = now or utc_now()
        reference = self.last_seen_at or self.created_at
        return (now - reference).total_seconds()

    def is_offline(self, now: Optional[datetime] = None) -> bool:
        if not self.active or not self.thresholds.offline_enabled:
            return False
        return self.seconds_since_seen(now) > self.thresholds.offline_timeout_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "farm_id": self.farm_id,
            "zone_id": self.zone_id,
            "name": self.name,
            "calibration": self.calibration.to_dict(),
            "thresholds": self.thresholds.to_dict(),
            "connectivity": {
                "last_seen_at": to_iso(self.last_seen_at),
                "signal_strength": self.signal_strength,
            },
            "statistics": {
                "total_readings": self.total_readings,
                "last_reading": self.last_reading,
            },
            "active": self.active,
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Device":
        return cls(
            device_id=row["device_id"],
            farm_id=row["farm_id"],
            zone_id=row["zone_id"],
            name=row.get("name") or "",
            calibration=MoistureCalibration(
                dry_value=row["dry_value"],
                wet_value=row["wet_value"],
                last_calibrated_at=coerce_datetime(row.get("last_calibrated_at")),
                notes=row.get("calibration_notes"),
            ),
            thresholds=DeviceThresholds.from_dict(row.get("thresholds")),
            last_seen_at=coerce_datetime(row.get("last_seen_at")),
            signal_strength=row.get("signal_strength"),
            total_readings=row.get("total_readings") or 0,
            last_reading=row.get("last_reading"),
            active=bool(row.get("active", 1)),
            created_at=coerce_datetime(row.get("created_at")) or utc_now(),
        )
