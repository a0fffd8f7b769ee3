from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from infrastructure.database.utils import decode_columns, dumps, storage_errors

logger = logging.getLogger(__name__)

_DEVICE_JSON = ("thresholds", "last_reading")


class DeviceOperations:
    """Soil probe registration, calibration and per-reading statistics."""

    @storage_errors("insert_device")
    def insert_device(self, device: Dict[str, Any]) -> None:
        with self.connection() as db:
            db.execute(
                """
                INSERT INTO Device (
                    device_id, farm_id, zone_id, name, dry_value, wet_value,
                    last_calibrated_at, calibration_notes, thresholds, active, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    device["device_id"],
                    device["farm_id"],
                    device["zone_id"],
                    device.get("name") or "",
                    device["dry_value"],
                    device["wet_value"],
                    device.get("last_calibrated_at"),
                    device.get("calibration_notes"),
                    dumps(device.get("thresholds")),
                    1,
                    device["created_at"],
                ),
            )
        logger.info("Device '%s' registered on %s/%s", device["device_id"], device["farm_id"], device["zone_id"])

    @storage_errors("get_device")
    def get_device(self, device_id: str) -> Optional[Dict[str, Any]]:
        db = self.get_db()
        row = db.execute("SELECT * FROM Device WHERE device_id = ?", (device_id,)).fetchone()
        return decode_columns(row, *_DEVICE_JSON)

    @storage_errors("list_devices")
    def list_devices(self, farm_id: str, active_only: bool = False) -> List[Dict[str, Any]]:
        db = self.get_db()
        query = "SELECT * FROM Device WHERE farm_id = ?"
        if active_only:
            query += " AND active = 1"
        rows = db.execute(query + " ORDER BY device_id", (farm_id,)).fetchall()
        return [decode_columns(row, *_DEVICE_JSON) for row in rows]

    @storage_errors("update_device_calibration")
    def update_device_calibration(
        self,
        device_id: str,
        dry_value: float,
        wet_value: float,
        calibrated_at: str,
        notes: Optional[str] = None,
    ) -> bool:
        with self.connection() as db:
            cur = db.execute(
                """
                UPDATE Device
                SET dry_value = ?, wet_value = ?, last_calibrated_at = ?, calibration_notes = ?
                WHERE device_id = ?
                """,
                (dry_value, wet_value, calibrated_at, notes, device_id),
            )
            return cur.rowcount == 1

    @storage_errors("update_device_thresholds")
    def update_device_thresholds(self, device_id: str, thresholds: Dict[str, Any]) -> bool:
        with self.connection() as db:
            cur = db.execute(
                "UPDATE Device SET thresholds = ? WHERE device_id = ?",
                (dumps(thresholds), device_id),
            )
            return cur.rowcount == 1

    @storage_errors("set_device_active")
    def set_device_active(self, device_id: str, active: bool) -> bool:
        with self.connection() as db:
            cur = db.execute(
                "UPDATE Device SET active = ? WHERE device_id = ?",
                (1 if active else 0, device_id),
            )
            return cur.rowcount == 1

    def _touch_device(
        self,
        db,
        device_id: str,
        seen_at: str,
        signal_strength: Optional[float],
        snapshot: Dict[str, Any],
    ) -> bool:
        """Single-statement update of connectivity and reading statistics.

        ``last_seen_at`` only moves forward; a late sample stamped before it
        is counted but leaves the signal and ``last_reading`` snapshot alone.
        """
        cur = db.execute(
            """
            UPDATE Device
            SET last_seen_at = MAX(COALESCE(last_seen_at, ''), :seen_at),
                signal_strength = CASE
                    WHEN :seen_at >= COALESCE(last_seen_at, '') THEN COALESCE(:signal, signal_strength)
                    ELSE signal_strength
                END,
                last_reading = CASE
                    WHEN :seen_at >= COALESCE(last_seen_at, '') THEN :snapshot
                    ELSE last_reading
                END,
                total_readings = total_readings + 1
            WHERE device_id = :device_id
            """,
            {
                "seen_at": seen_at,
                "signal": signal_strength,
                "snapshot": dumps(snapshot),
                "device_id": device_id,
            },
        )
        return cur.rowcount == 1
