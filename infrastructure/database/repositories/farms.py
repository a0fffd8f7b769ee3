from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import List, Optional

from app.domain.exceptions import ConflictError
from app.domain.farm import Farm
from app.utils.time import to_iso
from infrastructure.database.ops.farms import FarmOperations


@dataclass(frozen=True)
class FarmRepository:
    """Repository facade for farms and their zones."""

    _backend: FarmOperations

    def create(self, farm: Farm) -> Farm:
        row = {
            "farm_id": farm.farm_id,
            "name": farm.name,
            "latitude": farm.latitude,
            "longitude": farm.longitude,
            "area": farm.area,
            "target_moisture": farm.target_moisture,
            "flow_rate_per_zone": farm.flow_rate_per_zone,
            "auto_irrigation": farm.auto_irrigation.to_dict(),
            "recipients": list(farm.recipients),
            "channels": [str(c) for c in farm.channels],
            "active": farm.active,
            "created_at": to_iso(farm.created_at),
        }
        zones = [
            {
                "zone_id": zone.zone_id,
                "name": zone.name,
                "area": zone.area,
                "crop_type": zone.crop_type,
                "target_moisture": zone.target_moisture,
                "thresholds": zone.thresholds.to_dict(),
            }
            for zone in farm.zones
        ]
        try:
            self._backend.insert_farm(row, zones)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Farm {farm.farm_id} already exists", code=ConflictError.DUPLICATE
            ) from exc
        return self.get(farm.farm_id)

    def get(self, farm_id: str) -> Optional[Farm]:
        row = self._backend.get_farm(farm_id)
        if row is None:
            return None
        return Farm.from_row(row, self._backend.get_zones(farm_id))

    def list(self, active_only: bool = True) -> List[Farm]:
        return [
            Farm.from_row(row, self._backend.get_zones(row["farm_id"]))
            for row in self._backend.list_farms(active_only=active_only)
        ]
