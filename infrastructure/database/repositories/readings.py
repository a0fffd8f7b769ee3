from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.domain.sensors.reading import Reading, ReadingAlert
from app.utils.time import to_iso
from infrastructure.database.ops.readings import ReadingOperations


def _to_domain(row: dict) -> Reading:
    alerts = tuple(ReadingAlert.from_dict(a) for a in row.get("alerts") or ())
    return Reading.from_row(row, alerts)


@dataclass(frozen=True)
class ReadingRepository:
    """Repository facade for soil readings."""

    _backend: ReadingOperations

    def add(self, reading: Reading) -> Reading:
        """Persist ``reading`` and bump the device statistics atomically."""
        row = reading.to_dict()
        row["timestamp"] = to_iso(reading.timestamp)
        snapshot = reading.snapshot()
        snapshot.pop("reading_id", None)
        reading_id = self._backend.insert_reading(row, snapshot)
        return reading.with_id(reading_id)

    def get(self, reading_id: int) -> Optional[Reading]:
        row = self._backend.get_reading(reading_id)
        return _to_domain(row) if row else None

    def for_device(
        self,
        device_id: str,
        limit: int = 100,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Reading]:
        rows = self._backend.list_device_readings(device_id, limit, to_iso(since), to_iso(until))
        return [_to_domain(row) for row in rows]

    def averages(
        self,
        device_id: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        return self._backend.device_reading_averages(device_id, to_iso(since), to_iso(until))

    def latest_for_farm(self, farm_id: str, since: Optional[datetime] = None) -> List[Reading]:
        rows = self._backend.latest_farm_readings(farm_id, to_iso(since) if since else None)
        return [_to_domain(row) for row in rows]

    def acknowledge_embedded(self, device_id: str, alert_type: str) -> int:
        return self._backend.acknowledge_reading_alerts(device_id, alert_type)
