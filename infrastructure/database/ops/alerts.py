from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from infrastructure.database.utils import storage_errors

logger = logging.getLogger(__name__)

# Most urgent first; ordering happens before LIMIT.
_SEVERITY_RANK = "CASE severity WHEN 'critical' THEN 2 WHEN 'warning' THEN 1 ELSE 0 END"


class AlertOperations:
    """Database operations for Alert entity.

    A partial unique index keeps at most one unacknowledged row per
    (subject_id, alert_type); inserting a second raises IntegrityError.
    """

    @storage_errors("find_pending_alert")
    def find_pending_alert(self, subject_id: str, alert_type: str) -> Optional[Dict[str, Any]]:
        db = self.get_db()
        return db.execute(
            "SELECT * FROM Alert WHERE subject_id = ? AND alert_type = ? AND acknowledged = 0",
            (subject_id, alert_type),
        ).fetchone()

    @storage_errors("get_alert")
    def get_alert_by_id(self, alert_id: int) -> Optional[Dict[str, Any]]:
        db = self.get_db()
        return db.execute("SELECT * FROM Alert WHERE alert_id = ?", (alert_id,)).fetchone()

    @storage_errors("insert_alert")
    def insert_alert(self, alert: Dict[str, Any]) -> int:
        with self.connection() as db:
            cur = db.execute(
                """
                INSERT INTO Alert (
                    subject_id, subject_type, farm_id, alert_type, severity,
                    message, timestamp, first_seen, occurrences, acknowledged
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, 0)
                """,
                (
                    alert["subject_id"],
                    alert["subject_type"],
                    alert["farm_id"],
                    alert["alert_type"],
                    alert["severity"],
                    alert["message"],
                    alert["timestamp"],
                    alert.get("first_seen") or alert["timestamp"],
                ),
            )
            return cur.lastrowid

    @storage_errors("refresh_alert")
    def refresh_pending_alert(self, alert_id: int, severity: str, message: str, timestamp: str) -> bool:
        """Overwrite a pending alert with a newer occurrence."""
        with self.connection() as db:
            cur = db.execute(
                """
                UPDATE Alert
                SET severity = ?, message = ?, timestamp = ?, occurrences = occurrences + 1
                WHERE alert_id = ? AND acknowledged = 0
                """,
                (severity, message, timestamp, alert_id),
            )
            return cur.rowcount == 1

    @storage_errors("acknowledge_alert")
    def acknowledge_alert(self, alert_id: int, acknowledged_at: str) -> bool:
        """Returns True only for the call that flipped the flag."""
        with self.connection() as db:
            cur = db.execute(
                "UPDATE Alert SET acknowledged = 1, acknowledged_at = ? WHERE alert_id = ? AND acknowledged = 0",
                (acknowledged_at, alert_id),
            )
            return cur.rowcount == 1

    @storage_errors("list_alerts")
    def list_alerts(
        self,
        *,
        subject_id: Optional[str] = None,
        farm_id: Optional[str] = None,
        pending_only: bool = True,
        limit: int = 200,
    ) -> List[Dict[str, Any]]:
        conditions: List[str] = []
        params: List[Any] = []
        if subject_id is not None:
            conditions.append("subject_id = ?")
            params.append(subject_id)
        if farm_id is not None:
            conditions.append("farm_id = ?")
            params.append(farm_id)
        if pending_only:
            conditions.append("acknowledged = 0")

        query = "SELECT * FROM Alert"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += f" ORDER BY {_SEVERITY_RANK} DESC, timestamp DESC, alert_id DESC LIMIT ?"  # nosec B608: constant
        params.append(limit)

        db = self.get_db()
        return db.execute(query, params).fetchall()
