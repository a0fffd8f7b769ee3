"""
Irrigation Run Domain Objects
=============================
A run is created pending (or by a recommendation), started, then ends as
completed, failed or cancelled. Instances are immutable snapshots; the
lifecycle manager persists each transition and reloads the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from app.enums import AlertSeverity, AlertType, RunStatus, TriggerReason
from app.utils.numbers import round_half_up
from app.utils.time import coerce_datetime, to_iso, utc_now

MIN_DURATION_MINUTES = 1
MAX_DURATION_MINUTES = 480


def planned_volume(duration_minutes: float, flow_rate_per_zone: float, zone_count: int) -> float:
    return duration_minutes * flow_rate_per_zone * zone_count


def efficiency(actual_volume: Optional[float], planned: Optional[float]) -> Optional[int]:
    """Actual over planned volume as a whole percentage; None until both are known."""
    if actual_volume is None or not planned:
        return None
    return round_half_up(actual_volume / planned * 100)


@dataclass(frozen=True)
class MoistureDelta:
    zone_id: str
    before: float
    after: float
    device_id: Optional[str] = None

    @property
    def increase(self) -> float:
        return self.after - self.before

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone_id": self.zone_id,
            "device_id": self.device_id,
            "before": self.before,
            "after": self.after,
            "increase": self.increase,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MoistureDelta":
        return cls(
            zone_id=str(data["zone_id"]),
            before=float(data["before"]),
            after=float(data["after"]),
            device_id=data.get("device_id"),
        )


@dataclass(frozen=True)
class RunAlert:
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": str(self.alert_type),
            "severity": str(self.severity),
            "message": self.message,
            "timestamp": to_iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunAlert":
        return cls(
            alert_type=AlertType(data["type"]),
            severity=AlertSeverity(data["severity"]),
            message=data.get("message", ""),
            timestamp=coerce_datetime(data.get("timestamp")) or utc_now(),
        )


@dataclass(frozen=True)
class RunCost:
    water: float = 0.0
    electricity: float = 0.0
    fertilizer: float = 0.0

    @property
    def total(self) -> float:
        return self.water + self.electricity + self.fertilizer

    @classmethod
    def compute(
        cls,
        *,
        actual_volume: float,
        minutes: float,
        water_cost_per_liter: float,
        energy_cost_per_minute: float,
        fertilizer: float = 0.0,
    ) -> "RunCost":
        return cls(
            water=round(actual_volume * water_cost_per_liter, 4),
            electricity=round(max(minutes, 0.0) * energy_cost_per_minute, 4),
            fertilizer=fertilizer,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "water": self.water,
            "electricity": self.electricity,
            "fertilizer": self.fertilizer,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RunCost":
        data = data or {}
        return cls(
            water=float(data.get("water", 0.0)),
            electricity=float(data.get("electricity", 0.0)),
            fertilizer=float(data.get("fertilizer", 0.0)),
        )


@dataclass(frozen=True)
class IrrigationRun:
    farm_id: str
    zones: Tuple[str, ...]
    duration_minutes: int
    flow_rate_per_zone: float
    planned_volume: float
    trigger_reason: TriggerReason
    status: RunStatus = RunStatus.PENDING
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    actual_volume: Optional[float] = None
    efficiency: Optional[int] = None
    moisture_deltas: Tuple[MoistureDelta, ...] = ()
    alerts: Tuple[RunAlert, ...] = ()
    cost: RunCost = field(default_factory=RunCost)
    notes: str = ""
    recommendation: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    run_id: Optional[int] = None

    @property
    def actual_duration_minutes(self) -> Optional[int]:
        if self.actual_start is None or self.actual_end is None:
            return None
        return round_half_up((self.actual_end - self.actual_start).total_seconds() / 60)

    @property
    def average_moisture_increase(self) -> Optional[int]:
        if not self.moisture_deltas:
            return None
        total = sum(delta.increase for delta in self.moisture_deltas)
        return round_half_up(total / len(self.moisture_deltas))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "farm_id": self.farm_id,
            "zones": list(self.zones),
            "duration_minutes": self.duration_minutes,
            "flow_rate_per_zone": self.flow_rate_per_zone,
            "planned_volume": self.planned_volume,
            "actual_volume": self.actual_volume,
            "trigger_reason": str(self.trigger_reason),
            "status": str(self.status),
            "schedule": {
                "start": to_iso(self.scheduled_start),
                "end": to_iso(self.scheduled_end),
                "actual_start": to_iso(self.actual_start),
                "actual_end": to_iso(self.actual_end),
            },
            "actual_duration_minutes": self.actual_duration_minutes,
            "efficiency": self.efficiency,
            "moisture_deltas": [delta.to_dict() for delta in self.moisture_deltas],
            "average_moisture_increase": self.average_moisture_increase,
            "alerts": [alert.to_dict() for alert in self.alerts],
            "cost": self.cost.to_dict(),
            "notes": self.notes,
            "recommendation": self.recommendation,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "IrrigationRun":
        """Build from a storage row whose JSON columns are already decoded."""
        return cls(
            run_id=row["run_id"],
            farm_id=row["farm_id"],
            zones=tuple(row.get("zones") or ()),
            duration_minutes=row["duration_minutes"],
            flow_rate_per_zone=row["flow_rate_per_zone"],
            planned_volume=row["planned_volume"],
            actual_volume=row.get("actual_volume"),
            trigger_reason=TriggerReason(row["trigger_reason"]),
            status=RunStatus(row["status"]),
            scheduled_start=coerce_datetime(row.get("scheduled_start")),
            scheduled_end=coerce_datetime(row.get("scheduled_end")),
            actual_start=coerce_datetime(row.get("actual_start")),
            actual_end=coerce_datetime(row.get("actual_end")),
            efficiency=row.get("efficiency"),
            moisture_deltas=tuple(MoistureDelta.from_dict(d) for d in row.get("moisture_deltas") or ()),
            alerts=tuple(RunAlert.from_dict(a) for a in row.get("alerts") or ()),
            cost=RunCost.from_dict(row.get("cost")),
            notes=row.get("notes") or "",
            recommendation=row.get("recommendation"),
            created_at=coerce_datetime(row.get("created_at")) or utc_now(),
            updated_at=coerce_datetime(row.get("updated_at")),
        )
