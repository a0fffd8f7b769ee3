from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from infrastructure.database.utils import decode_columns, dumps, storage_errors

logger = logging.getLogger(__name__)

_FARM_JSON = ("auto_irrigation", "recipients", "channels")


class FarmOperations:
    """Database operations for Farm and Zone entities."""

    @storage_errors("insert_farm")
    def insert_farm(self, farm: Dict[str, Any], zones: List[Dict[str, Any]]) -> None:
        """Insert a farm and its zones atomically. Raises IntegrityError on duplicates."""
        with self.transaction() as db:
            db.execute(
                """
                INSERT INTO Farm (
                    farm_id, name, latitude, longitude, area, target_moisture,
                    flow_rate_per_zone, auto_irrigation, recipients, channels,
                    active, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    farm["farm_id"],
                    farm["name"],
                    farm["latitude"],
                    farm["longitude"],
                    farm.get("area"),
                    farm["target_moisture"],
                    farm["flow_rate_per_zone"],
                    dumps(farm.get("auto_irrigation")),
                    dumps(farm.get("recipients") or []),
                    dumps(farm.get("channels") or []),
                    1 if farm.get("active", True) else 0,
                    farm["created_at"],
                ),
            )
            db.executemany(
                """
                INSERT INTO Zone (farm_id, zone_id, name, area, crop_type, target_moisture, thresholds)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        farm["farm_id"],
                        zone["zone_id"],
                        zone.get("name") or "",
                        zone.get("area"),
                        zone.get("crop_type"),
                        zone["target_moisture"],
                        dumps(zone.get("thresholds")),
                    )
                    for zone in zones
                ],
            )
        logger.info("Farm '%s' registered with %d zone(s)", farm["farm_id"], len(zones))

    @storage_errors("get_farm")
    def get_farm(self, farm_id: str) -> Optional[Dict[str, Any]]:
        db = self.get_db()
        row = db.execute("SELECT * FROM Farm WHERE farm_id = ?", (farm_id,)).fetchone()
        return decode_columns(row, *_FARM_JSON)

    @storage_errors("get_zones")
    def get_zones(self, farm_id: str) -> List[Dict[str, Any]]:
        db = self.get_db()
        rows = db.execute(
            "SELECT * FROM Zone WHERE farm_id = ? ORDER BY zone_id", (farm_id,)
        ).fetchall()
        return [decode_columns(row, "thresholds") for row in rows]

    @storage_errors("get_zone")
    def get_zone(self, farm_id: str, zone_id: str) -> Optional[Dict[str, Any]]:
        db = self.get_db()
        row = db.execute(
            "SELECT * FROM Zone WHERE farm_id = ? AND zone_id = ?", (farm_id, zone_id)
        ).fetchone()
        return decode_columns(row, "thresholds")

    @storage_errors("list_farms")
    def list_farms(self, active_only: bool = True) -> List[Dict[str, Any]]:
        db = self.get_db()
        query = "SELECT * FROM Farm"
        if active_only:
            query += " WHERE active = 1"
        rows = db.execute(query + " ORDER BY farm_id").fetchall()
        return [decode_columns(row, *_FARM_JSON) for row in rows]

    def record_farm_irrigation(self, db, farm_id: str, water_used: float, at: str) -> None:
        """Bump farm statistics inside the caller's transaction."""
        db.execute(
            """
            UPDATE Farm
            SET total_irrigation_events = total_irrigation_events + 1,
                total_water_used = total_water_used + ?,
                last_irrigation_at = ?
            WHERE farm_id = ?
            """,
            (water_used, at, farm_id),
        )
