from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from app.domain.alert import Alert
from app.domain.exceptions import ConflictError
from app.utils.time import to_iso
from infrastructure.database.ops.alerts import AlertOperations


@dataclass(frozen=True)
class AlertRepository:
    """Repository facade for alert operations."""

    _backend: AlertOperations

    def find_pending(self, subject_id: str, alert_type: str) -> Optional[Alert]:
        row = self._backend.find_pending_alert(subject_id, alert_type)
        return Alert.from_row(row) if row else None

    def get_by_id(self, alert_id: int) -> Optional[Alert]:
        row = self._backend.get_alert_by_id(alert_id)
        return Alert.from_row(row) if row else None

    def create(self, alert: Alert) -> Alert:
        """Insert a new pending alert.

        Raises:
            ConflictError: an unacknowledged alert for the same subject and
                type already exists.
        """
        try:
            alert_id = self._backend.insert_alert(
                {
                    "subject_id": alert.subject_id,
                    "subject_type": str(alert.subject_type),
                    "farm_id": alert.farm_id,
                    "alert_type": str(alert.alert_type),
                    "severity": str(alert.severity),
                    "message": alert.message,
                    "timestamp": to_iso(alert.timestamp),
                    "first_seen": to_iso(alert.first_seen or alert.timestamp),
                }
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"{alert.alert_type} already pending for {alert.subject_id}", code=ConflictError.DUPLICATE
            ) from exc
        return self.get_by_id(alert_id)

    def refresh(self, alert_id: int, alert: Alert) -> bool:
        return self._backend.refresh_pending_alert(
            alert_id, str(alert.severity), alert.message, to_iso(alert.timestamp)
        )

    def acknowledge(self, alert_id: int, at: datetime) -> bool:
        return self._backend.acknowledge_alert(alert_id, to_iso(at))

    def list_for_subject(self, subject_id: str, pending_only: bool = True) -> List[Alert]:
        rows = self._backend.list_alerts(subject_id=subject_id, pending_only=pending_only)
        return [Alert.from_row(row) for row in rows]

    def list_for_farm(self, farm_id: str, pending_only: bool = True, limit: int = 200) -> List[Alert]:
        rows = self._backend.list_alerts(farm_id=farm_id, pending_only=pending_only, limit=limit)
        return [Alert.from_row(row) for row in rows]
