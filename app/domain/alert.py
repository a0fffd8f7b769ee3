"""
Alert Entity
============
An alert raised against a device or a farm. At most one unacknowledged alert
exists per (subject, type); repeats update it in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from app.enums import AlertSeverity, AlertType, SubjectType
from app.utils.time import coerce_datetime, to_iso, utc_now


@dataclass(frozen=True)
class Alert:
    subject_id: str
    subject_type: SubjectType
    farm_id: str
    alert_type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    first_seen: Optional[datetime] = None
    occurrences: int = 1
    acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None
    alert_id: Optional[int] = None

    @property
    def is_notifiable(self) -> bool:
        return self.severity in (AlertSeverity.WARNING, AlertSeverity.CRITICAL)

    def with_id(self, alert_id: int) -> "Alert":
        return replace(self, alert_id=alert_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "subject_id": self.subject_id,
            "subject_type": str(self.subject_type),
            "farm_id": self.farm_id,
            "type": str(self.alert_type),
            "severity": str(self.severity),
            "message": self.message,
            "timestamp": to_iso(self.timestamp),
            "first_seen": to_iso(self.first_seen or self.timestamp),
            "occurrences": self.occurrences,
            "acknowledged": self.acknowledged,
            "acknowledged_at": to_iso(self.acknowledged_at),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Alert":
        return cls(
            alert_id=row["alert_id"],
            subject_id=row["subject_id"],
            subject_type=SubjectType(row["subject_type"]),
            farm_id=row["farm_id"],
            alert_type=AlertType(row["alert_type"]),
            severity=AlertSeverity(row["severity"]),
            message=row.get("message") or "",
            timestamp=coerce_datetime(row["timestamp"]),
            first_seen=coerce_datetime(row.get("first_seen")),
            occurrences=row.get("occurrences") or 1,
            acknowledged=bool(row.get("acknowledged")),
            acknowledged_at=coerce_datetime(row.get("acknowledged_at")),
        )


def priority_order(alerts: Iterable[Alert]) -> List[Alert]:
    """Critical before warning before info; newest first within a severity."""
    by_recency = sorted(alerts, key=lambda a: a.timestamp, reverse=True)
    return sorted(by_recency, key=lambda a: a.severity.rank, reverse=True)
