"""
Threshold Registry
==================
Single source of truth for per-device calibration and alert thresholds and
per-zone moisture bands.

Lookups are pure reads; only ``calibrate`` and ``update_device_thresholds``
write to the store.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from app.domain.exceptions import NotFoundError
from app.domain.farm import Device
from app.domain.sensors.calibration import MoistureCalibration, validate_calibration
from app.domain.thresholds import DEFAULT_ZONE_THRESHOLDS, DeviceThresholds, ZoneThresholds
from app.utils.time import utc_now

if TYPE_CHECKING:
    from infrastructure.database.repositories.devices import DeviceRepository
    from infrastructure.database.repositories.farms import FarmRepository

logger = logging.getLogger(__name__)


class ThresholdRegistry:
    """Calibration and threshold lookups backed by the device and farm repositories."""

    def __init__(self, device_repo: "DeviceRepository", farm_repo: "FarmRepository"):
        self.device_repo = device_repo
        self.farm_repo = farm_repo

    def _require_device(self, device_id: str) -> Device:
        device = self.device_repo.get(device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found", code=NotFoundError.DEVICE_NOT_FOUND)
        return device

    def device_thresholds(self, device_id: str) -> DeviceThresholds:
        return self._require_device(device_id).thresholds

    def zone_thresholds(self, farm_id: str, zone_id: str) -> ZoneThresholds:
        """Return the zone's moisture bands, falling back to the defaults."""
        farm = self.farm_repo.get(farm_id)
        if farm is None:
            return DEFAULT_ZONE_THRESHOLDS
        zone = farm.get_zone(zone_id)
        return zone.thresholds if zone is not None else DEFAULT_ZONE_THRESHOLDS

    def calibration(self, device_id: str) -> MoistureCalibration:
        return self._require_device(device_id).calibration

    def calibrate(
        self,
        device_id: str,
        dry_value: float,
        wet_value: float,
        *,
        notes: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> MoistureCalibration:
        """
        Store a new dry/wet calibration and stamp ``last_calibrated_at``.

        Raises:
            ValidationError: dry_value is not greater than wet_value
            NotFoundError: unknown device
        """
        validate_calibration(dry_value, wet_value)
        self._require_device(device_id)
        calibrated_at = at or utc_now()
        self.device_repo.save_calibration(device_id, dry_value, wet_value, calibrated_at, notes)
        logger.info("Calibrated device %s: dry=%s wet=%s", device_id, dry_value, wet_value)
        return MoistureCalibration(
            dry_value=dry_value,
            wet_value=wet_value,
            last_calibrated_at=calibrated_at,
            notes=notes,
        )

    def update_device_thresholds(self, device_id: str, **changes: Any) -> DeviceThresholds:
        """Apply ``changes`` to the device thresholds; the merged record is re-validated."""
        current = self.device_thresholds(device_id)
        updated = current.with_changes(**changes)
        if updated != current:
            self.device_repo.save_thresholds(device_id, updated)
            logger.info("Updated thresholds for device %s: %s", device_id, sorted(changes))
        return updated
