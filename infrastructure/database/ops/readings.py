from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from infrastructure.database.utils import decode_columns, dumps, loads, storage_errors

logger = logging.getLogger(__name__)


class ReadingOperations:
    """Append-only soil readings plus the embedded-alert acknowledgement flag."""

    @storage_errors("insert_reading")
    def insert_reading(self, reading: Dict[str, Any], snapshot: Dict[str, Any]) -> int:
        """Insert a reading and update the device statistics in one transaction."""
        with self.transaction() as db:
            cur = db.execute(
                """
                INSERT INTO Reading (
                    device_id, farm_id, zone_id, moisture, moisture_raw, temperature,
                    humidity, battery, signal_strength, quality_score, quality_band,
                    alerts, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    reading["device_id"],
                    reading["farm_id"],
                    reading["zone_id"],
                    reading["moisture"],
                    reading.get("moisture_raw"),
                    reading.get("temperature"),
                    reading.get("humidity"),
                    reading["battery"],
                    reading.get("signal_strength"),
                    reading["quality_score"],
                    reading["quality_band"],
                    dumps(reading.get("alerts") or []),
                    reading["timestamp"],
                ),
            )
            reading_id = cur.lastrowid
            self._touch_device(
                db,
                reading["device_id"],
                reading["timestamp"],
                reading.get("signal_strength"),
                {**snapshot, "reading_id": reading_id},
            )
            return reading_id

    @storage_errors("get_reading")
    def get_reading(self, reading_id: int) -> Optional[Dict[str, Any]]:
        db = self.get_db()
        row = db.execute("SELECT * FROM Reading WHERE reading_id = ?", (reading_id,)).fetchone()
        return decode_columns(row, "alerts")

    @storage_errors("list_device_readings")
    def list_device_readings(
        self,
        device_id: str,
        limit: int = 100,
        since: Optional[str] = None,
        until: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query = "SELECT * FROM Reading WHERE device_id = ?"
        params: List[Any] = [device_id]
        if since is not None:
            query += " AND timestamp >= ?"
            params.append(since)
        if until is not None:
            query += " AND timestamp <= ?"
            params.append(until)
        query += " ORDER BY timestamp DESC, reading_id DESC LIMIT ?"
        params.append(limit)

        db = self.get_db()
        rows = db.execute(query, params).fetchall()
        return [decode_columns(row, "alerts") for row in rows]

    @storage_errors("device_reading_averages")
    def device_reading_averages(
        self,
        device_id: str,
        since: Optional[str] = None,
        until: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Mean/min/max over the device's readings in ``[since, until]``."""
        query = """
            SELECT
                COUNT(*) AS count,
                AVG(moisture) AS average_moisture,
                MIN(moisture) AS min_moisture,
                MAX(moisture) AS max_moisture,
                AVG(temperature) AS average_temperature,
                AVG(humidity) AS average_humidity,
                AVG(battery) AS average_battery,
                MIN(timestamp) AS first_reading,
                MAX(timestamp) AS last_reading
            FROM Reading
            WHERE device_id = ?
        """
        params: List[Any] = [device_id]
        if since is not None:
            query += " AND timestamp >= ?"
            params.append(since)
        if until is not None:
            query += " AND timestamp <= ?"
            params.append(until)

        db = self.get_db()
        return db.execute(query, params).fetchone()

    @storage_errors("latest_farm_readings")
    def latest_farm_readings(self, farm_id: str, since: Optional[str] = None) -> List[Dict[str, Any]]:
        """Latest reading of every active device on the farm, optionally no older than ``since``."""
        db = self.get_db()
        params: List[Any] = [farm_id]
        query = """
            SELECT r.* FROM Reading r
            JOIN Device d ON d.device_id = r.device_id
            WHERE r.farm_id = ?
              AND d.active = 1
              AND r.reading_id = (
                  SELECT r2.reading_id FROM Reading r2
                  WHERE r2.device_id = r.device_id
                  ORDER BY r2.timestamp DESC, r2.reading_id DESC
                  LIMIT 1
              )
        """
        if since is not None:
            query += " AND r.timestamp >= ?"
            params.append(since)
        rows = db.execute(query + " ORDER BY r.zone_id, r.device_id", params).fetchall()
        return [decode_columns(row, "alerts") for row in rows]

    @storage_errors("acknowledge_reading_alerts")
    def acknowledge_reading_alerts(self, device_id: str, alert_type: str) -> int:
        """Flag matching embedded alerts on the device's readings as acknowledged."""
        type_marker = f'%"type":"{alert_type}"%'
        updated = 0
        with self.transaction() as db:
            rows = db.execute(
                """
                SELECT reading_id, alerts FROM Reading
                WHERE device_id = ? AND alerts LIKE ? AND alerts LIKE '%"acknowledged":false%'
                """,
                (device_id, type_marker),
            ).fetchall()
            for row in rows:
                alerts = loads(row["alerts"], [])
                changed = False
                for alert in alerts:
                    if alert.get("type") == alert_type and not alert.get("acknowledged"):
                        alert["acknowledged"] = True
                        changed = True
                if changed:
                    db.execute(
                        "UPDATE Reading SET alerts = ? WHERE reading_id = ?",
                        (dumps(alerts), row["reading_id"]),
                    )
                    updated += 1
        if updated:
            logger.debug("Acknowledged %s on %d reading(s) of %s", alert_type, updated, device_id)
        return updated
