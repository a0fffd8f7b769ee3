"""
Reading Ingestor
================
Validates one telemetry sample, converts it to a calibrated moisture
percentage, scores its quality, derives threshold alerts and persists it.

Per-device ingestion is sequenced: the whole validate, persist and raise
path runs under the device's lock, so two samples from the same probe never
interleave their statistics or alert updates.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from app.domain.alert import Alert
from app.domain.exceptions import ConflictError, NotFoundError
from app.domain.farm import Device
from app.domain.sensors.calibration import DEFAULT_CALIBRATION_MAX_AGE_DAYS
from app.domain.sensors.reading import Reading, ReadingAlert, score_quality
from app.domain.thresholds import BATTERY_CRITICAL
from app.enums import AlertSeverity, AlertType, SubjectType
from app.schemas.readings import ReadingPayload
from app.utils.concurrency import KeyedLockProvider
from app.utils.time import coerce_datetime, utc_now
from app.utils.validation import parse_model

if TYPE_CHECKING:
    from app.services.protocols import AlertSink, LockProvider
    from infrastructure.database.repositories.devices import DeviceRepository
    from infrastructure.database.repositories.readings import ReadingRepository

logger = logging.getLogger(__name__)

# A sample stamped further ahead than this is treated as a clock fault.
MAX_CLOCK_SKEW = timedelta(minutes=5)


class ReadingIngestor:
    """Turns raw device samples into persisted :class:`Reading` records."""

    def __init__(
        self,
        device_repo: "DeviceRepository",
        reading_repo: "ReadingRepository",
        alerts: "AlertSink",
        *,
        lock_provider: Optional["LockProvider"] = None,
        calibration_max_age_days: float = DEFAULT_CALIBRATION_MAX_AGE_DAYS,
    ):
        self.device_repo = device_repo
        self.reading_repo = reading_repo
        self.alerts = alerts
        self._locks = lock_provider or KeyedLockProvider()
        self.calibration_max_age_days = calibration_max_age_days

    def ingest(self, device_id: str, raw_sample: Dict[str, Any], *, now: Optional[datetime] = None) -> Reading:
        """
        Accept one sample from ``device_id``.

        Raises:
            ValidationError: out-of-range or malformed payload; nothing is stored
            NotFoundError: unknown device
            ConflictError: device has been deactivated
        """
        payload = parse_model(ReadingPayload, raw_sample)

        with self._locks.lock(("device", device_id)):
            device = self.device_repo.get(device_id)
            if device is None:
                raise NotFoundError(f"Device {device_id} not found", code=NotFoundError.DEVICE_NOT_FOUND)
            if not device.active:
                raise ConflictError(f"Device {device_id} is deactivated", code=ConflictError.DEVICE_INACTIVE)

            now = now or utc_now()
            reading = self._build_reading(device, payload, now)
            stored = self.reading_repo.add(reading)
            logger.debug(
                "Stored reading %s from %s: moisture=%s%% quality=%s alerts=%d",
                stored.reading_id,
                device_id,
                stored.moisture,
                stored.quality_band,
                len(stored.alerts),
            )

            for embedded in stored.alerts:
                self.alerts.raise_alert(
                    Alert(
                        subject_id=device.device_id,
                        subject_type=SubjectType.DEVICE,
                        farm_id=device.farm_id,
                        alert_type=embedded.alert_type,
                        severity=embedded.severity,
                        message=embedded.message,
                        timestamp=stored.timestamp,
                    )
                )
        return stored

    def _build_reading(self, device: Device, payload: ReadingPayload, now: datetime) -> Reading:
        timestamp = coerce_datetime(payload.timestamp) or now
        if payload.moisture is not None:
            moisture = float(payload.moisture)
        else:
            moisture = float(device.calibration.apply(payload.moisture_raw))

        score, band = score_quality(
            battery=payload.battery,
            signal_strength=payload.signal_strength,
            temperature=payload.temperature,
            humidity=payload.humidity,
        )
        alerts = self.derive_alerts(device, payload, moisture, timestamp, now)
        return Reading(
            device_id=device.device_id,
            farm_id=device.farm_id,
            zone_id=device.zone_id,
            moisture=moisture,
            moisture_raw=payload.moisture_raw,
            temperature=payload.temperature,
            humidity=payload.humidity,
            battery=payload.battery,
            signal_strength=payload.signal_strength,
            quality_score=score,
            quality_band=band,
            alerts=tuple(alerts),
            timestamp=timestamp,
        )

    def derive_alerts(
        self,
        device: Device,
        payload: ReadingPayload,
        moisture: float,
        timestamp: datetime,
        now: datetime,
    ) -> List[ReadingAlert]:
        """Compare a validated sample against the device thresholds."""
        thresholds = device.thresholds
        alerts: List[ReadingAlert] = []

        if thresholds.moisture_enabled:
            if moisture <= thresholds.moisture_low:
                alerts.append(
                    ReadingAlert(
                        AlertType.LOW_MOISTURE,
                        AlertSeverity.CRITICAL,
                        f"Soil moisture {moisture:.0f}% at or below {thresholds.moisture_low:.0f}%",
                    )
                )
            elif moisture >= thresholds.moisture_high:
                alerts.append(
                    ReadingAlert(
                        AlertType.HIGH_MOISTURE,
                        AlertSeverity.WARNING,
                        f"Soil moisture {moisture:.0f}% at or above {thresholds.moisture_high:.0f}%",
                    )
                )

        if thresholds.low_battery_enabled and payload.battery <= thresholds.low_battery:
            severity = AlertSeverity.CRITICAL if payload.battery <= BATTERY_CRITICAL else AlertSeverity.WARNING
            alerts.append(
                ReadingAlert(AlertType.LOW_BATTERY, severity, f"Battery at {payload.battery:.0f}%")
            )

        sensor_error = self._sensor_error(device, payload, timestamp, now)
        if sensor_error is not None:
            alerts.append(sensor_error)

        if device.calibration.is_due(now, self.calibration_max_age_days):
            age = device.calibration.age_days(now)
            alerts.append(
                ReadingAlert(
                    AlertType.CALIBRATION_DUE,
                    AlertSeverity.INFO,
                    f"Calibration is {age:.0f} days old",
                )
            )
        return alerts

    @staticmethod
    def _sensor_error(
        device: Device, payload: ReadingPayload, timestamp: datetime, now: datetime
    ) -> Optional[ReadingAlert]:
        """Flag values that pass range checks but cannot be physically true."""
        if timestamp - now > MAX_CLOCK_SKEW:
            return ReadingAlert(
                AlertType.SENSOR_ERROR,
                AlertSeverity.WARNING,
                f"Sample timestamp {timestamp.isoformat()} is ahead of server time",
            )
        if payload.battery == 0 and now - timestamp <= MAX_CLOCK_SKEW:
            return ReadingAlert(
                AlertType.SENSOR_ERROR,
                AlertSeverity.CRITICAL,
                "Device reports 0% battery while transmitting",
            )
        if payload.moisture_raw is not None and not device.calibration.in_envelope(payload.moisture_raw):
            return ReadingAlert(
                AlertType.SENSOR_ERROR,
                AlertSeverity.WARNING,
                f"Raw value {payload.moisture_raw:.0f} outside calibration range "
                f"{device.calibration.wet_value:.0f}-{device.calibration.dry_value:.0f}",
            )
        return None
