from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from app.domain.exceptions import ConflictError
from app.domain.farm import Device
from app.domain.thresholds import DeviceThresholds
from app.utils.time import to_iso
from infrastructure.database.ops.devices import DeviceOperations


@dataclass(frozen=True)
class DeviceRepository:
    """Repository facade for soil probes."""

    _backend: DeviceOperations

    def create(self, device: Device) -> Device:
        try:
            self._backend.insert_device(
                {
                    "device_id": device.device_id,
                    "farm_id": device.farm_id,
                    "zone_id": device.zone_id,
                    "name": device.name,
                    "dry_value": device.calibration.dry_value,
                    "wet_value": device.calibration.wet_value,
                    "last_calibrated_at": to_iso(device.calibration.last_calibrated_at),
                    "calibration_notes": device.calibration.notes,
                    "thresholds": device.thresholds.to_dict(),
                    "created_at": to_iso(device.created_at),
                }
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"Device {device.device_id} already exists", code=ConflictError.DUPLICATE
            ) from exc
        return self.get(device.device_id)

    def get(self, device_id: str) -> Optional[Device]:
        row = self._backend.get_device(device_id)
        return Device.from_row(row) if row else None

    def list_for_farm(self, farm_id: str, active_only: bool = False) -> List[Device]:
        return [Device.from_row(row) for row in self._backend.list_devices(farm_id, active_only=active_only)]

    def save_calibration(
        self, device_id: str, dry_value: float, wet_value: float, calibrated_at: datetime, notes: Optional[str] = None
    ) -> bool:
        return self._backend.update_device_calibration(device_id, dry_value, wet_value, to_iso(calibrated_at), notes)

    def save_thresholds(self, device_id: str, thresholds: DeviceThresholds) -> bool:
        return self._backend.update_device_thresholds(device_id, thresholds.to_dict())

    def set_active(self, device_id: str, active: bool) -> bool:
        return self._backend.set_device_active(device_id, active)
