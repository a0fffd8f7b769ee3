"""
Irrigation Core Service
=======================
Facade over the registry, ingestor, alert aggregator, recommendation engine
and lifecycle manager. Every operation the HTTP API exposes goes through
here.

Responsibilities beyond delegation:
- farm and device registration
- asynchronous, per-device ordered ingestion (``submit_reading``)
- forecast lookup with graceful degradation to sensor-only evaluation
- auto-scheduling a run when a farm opts in and the recommendation is
  urgent and confident enough
- offline detection and alert fan-out to farm recipients
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from app.domain.alert import Alert
from app.domain.exceptions import ConflictError, DependencyError, InvariantViolation, NotFoundError
from app.domain.farm import AutoIrrigationConfig, Device, Farm, Zone
from app.domain.irrigation import IrrigationRun
from app.domain.recommendation_engine import (
    DEFAULT_POLICY,
    Forecast,
    Recommendation,
    RecommendationPolicy,
    ZoneReading,
    ZoneSettings,
    recommend,
)
from app.domain.sensors.calibration import MoistureCalibration
from app.domain.sensors.reading import Reading
from app.domain.thresholds import DeviceThresholds, ZoneThresholds
from app.enums import (
    AlertSeverity,
    AlertType,
    MoistureStatus,
    NotificationChannel,
    RecommendationAction,
    SubjectType,
    TriggerReason,
)
from app.schemas.farms import CalibrationPayload, DeviceThresholdsPayload, RegisterDeviceRequest, RegisterFarmRequest
from app.services.utilities.notification_dispatcher import NotificationPayload
from app.utils.concurrency import SerialKeyExecutor
from app.utils.time import to_iso, utc_now
from app.utils.validation import parse_model, sanitize_string

if TYPE_CHECKING:
    from app.services.application.alert_aggregator import AlertAggregator
    from app.services.application.irrigation_lifecycle import IrrigationLifecycle
    from app.services.application.reading_ingestor import ReadingIngestor
    from app.services.application.threshold_registry import ThresholdRegistry
    from app.services.protocols import ForecastProvider, NotificationSender
    from infrastructure.database.repositories import DeviceRepository, FarmRepository, ReadingRepository

logger = logging.getLogger(__name__)


class IrrigationCoreService:
    """Entry point for ingestion, recommendations, irrigation runs and alerts."""

    def __init__(
        self,
        *,
        farm_repo: "FarmRepository",
        device_repo: "DeviceRepository",
        reading_repo: "ReadingRepository",
        registry: "ThresholdRegistry",
        ingestor: "ReadingIngestor",
        alerts: "AlertAggregator",
        lifecycle: "IrrigationLifecycle",
        forecast: Optional["ForecastProvider"] = None,
        notifier: Optional["NotificationSender"] = None,
        ingestion_executor: Optional[SerialKeyExecutor] = None,
        policy: RecommendationPolicy = DEFAULT_POLICY,
        max_reading_age_hours: float = 6.0,
        default_flow_rate_per_zone: float = 5.0,
    ):
        self.farm_repo = farm_repo
        self.device_repo = device_repo
        self.reading_repo = reading_repo
        self.registry = registry
        self.ingestor = ingestor
        self.alerts = alerts
        self.lifecycle = lifecycle
        self.forecast = forecast
        self.notifier = notifier
        self.policy = policy
        self.max_reading_age_hours = max_reading_age_hours
        self.default_flow_rate_per_zone = default_flow_rate_per_zone
        self._executor = ingestion_executor or SerialKeyExecutor(name="ingest")

        if notifier is not None:
            self.alerts.set_notifier(self.notify_alert)

        logger.info("IrrigationCoreService initialized (forecast=%s)", type(forecast).__name__ if forecast else None)

    # ==================== Registration ====================

    def register_farm(self, payload: Dict[str, Any]) -> Farm:
        request = parse_model(RegisterFarmRequest, payload)
        farm = Farm(
            farm_id=request.farm_id,
            name=request.name,
            latitude=request.latitude,
            longitude=request.longitude,
            area=request.area,
            target_moisture=request.target_moisture,
            flow_rate_per_zone=request.flow_rate_per_zone or self.default_flow_rate_per_zone,
            auto_irrigation=AutoIrrigationConfig(**request.auto_irrigation.model_dump()),
            recipients=tuple(request.recipients),
            channels=tuple(request.channels) or (NotificationChannel.IN_APP,),
            zones=tuple(
                Zone(
                    zone_id=zone.zone_id,
                    name=zone.name,
                    area=zone.area,
                    crop_type=zone.crop_type,
                    target_moisture=zone.target_moisture,
                    thresholds=ZoneThresholds(**zone.thresholds.model_dump()),
                )
                for zone in request.zones
            ),
        )
        created = self.farm_repo.create(farm)
        logger.info("Registered farm %s with %d zones", created.farm_id, len(created.zones))
        return created

    def get_farm(self, farm_id: str) -> Farm:
        farm = self.farm_repo.get(farm_id)
        if farm is None:
            raise NotFoundError(f"Farm {farm_id} not found", code=NotFoundError.FARM_NOT_FOUND)
        return farm

    def list_farms(self) -> List[Farm]:
        return self.farm_repo.list(active_only=True)

    def register_device(self, payload: Dict[str, Any]) -> Device:
        """Register a probe to a farm zone; calibration is stamped as done now."""
        request = parse_model(RegisterDeviceRequest, payload)
        farm = self.get_farm(request.farm_id)
        if farm.get_zone(request.zone_id) is None:
            raise InvariantViolation(
                f"Zone {request.zone_id} does not belong to farm {farm.farm_id}",
                code=InvariantViolation.ZONE_NOT_IN_FARM,
                detail={"farm_id": farm.farm_id, "zone_id": request.zone_id},
            )

        now = utc_now()
        if request.calibration is not None:
            calibration = MoistureCalibration(
                dry_value=request.calibration.dry_value,
                wet_value=request.calibration.wet_value,
                last_calibrated_at=now,
                notes=request.calibration.notes,
            )
        else:
            calibration = MoistureCalibration(last_calibrated_at=now)

        device = Device(
            device_id=request.device_id,
            farm_id=farm.farm_id,
            zone_id=request.zone_id,
            name=request.name,
            calibration=calibration,
            thresholds=DeviceThresholds().with_changes(**request.thresholds.changes()),
            created_at=now,
        )
        created = self.device_repo.create(device)
        logger.info("Registered device %s on farm %s zone %s", created.device_id, farm.farm_id, created.zone_id)
        return created

    def get_device(self, device_id: str) -> Device:
        device = self.device_repo.get(device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found", code=NotFoundError.DEVICE_NOT_FOUND)
        return device

    def calibrate_device(self, device_id: str, payload: Dict[str, Any]) -> MoistureCalibration:
        request = parse_model(CalibrationPayload, payload)
        return self.registry.calibrate(
            device_id,
            request.dry_value,
            request.wet_value,
            notes=sanitize_string(request.notes, 200),
        )

    def update_device_thresholds(self, device_id: str, payload: Dict[str, Any]) -> DeviceThresholds:
        request = parse_model(DeviceThresholdsPayload, payload)
        return self.registry.update_device_thresholds(device_id, **request.changes())

    def deactivate_device(self, device_id: str) -> Device:
        """Stop accepting readings from a device; its history is kept."""
        device = self.get_device(device_id)
        if device.active:
            self.device_repo.set_active(device_id, False)
            logger.info("Deactivated device %s", device_id)
        return self.get_device(device_id)

    # ==================== Readings ====================

    def ingest_reading(self, device_id: str, payload: Dict[str, Any]) -> Reading:
        return self.ingestor.ingest(device_id, payload)

    def submit_reading(self, device_id: str, payload: Dict[str, Any]) -> "Future[Reading]":
        """Queue a sample; samples from one device are ingested in submission order."""
        return self._executor.submit(device_id, self.ingestor.ingest, device_id, payload)

    def latest_readings(self, farm_id: str, *, now: Optional[datetime] = None) -> List[Reading]:
        """Newest reading per active device, ignoring samples older than the freshness window."""
        self.get_farm(farm_id)
        since = (now or utc_now()) - timedelta(hours=self.max_reading_age_hours)
        return self.reading_repo.latest_for_farm(farm_id, since)

    def device_readings(
        self,
        device_id: str,
        limit: int = 100,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Reading]:
        """Newest-first history, optionally restricted to ``[since, until]``."""
        self.get_device(device_id)
        return self.reading_repo.for_device(device_id, limit, since, until)

    def reading_averages(
        self,
        device_id: str,
        *,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Averages and moisture range of a device's readings over a window."""
        self.get_device(device_id)
        row = self.reading_repo.averages(device_id, since, until)

        def _one_decimal(value: Optional[float]) -> Optional[float]:
            return round(value, 1) if value is not None else None

        return {
            "device_id": device_id,
            "since": to_iso(since),
            "until": to_iso(until),
            "count": row["count"],
            "average_moisture": _one_decimal(row["average_moisture"]),
            "min_moisture": row["min_moisture"],
            "max_moisture": row["max_moisture"],
            "average_temperature": _one_decimal(row["average_temperature"]),
            "average_humidity": _one_decimal(row["average_humidity"]),
            "average_battery": _one_decimal(row["average_battery"]),
            "first_reading": row["first_reading"],
            "last_reading": row["last_reading"],
        }

    # ==================== Recommendation ====================

    def _fetch_forecast(self, farm: Farm) -> Optional[Forecast]:
        if self.forecast is None:
            return None
        try:
            return self.forecast.get_forecast(farm.latitude, farm.longitude)
        except DependencyError as exc:
            logger.warning("Forecast unavailable for farm %s: %s", farm.farm_id, exc)
            self.alerts.raise_alert(
                Alert(
                    subject_id=farm.farm_id,
                    subject_type=SubjectType.FARM,
                    farm_id=farm.farm_id,
                    alert_type=AlertType.FORECAST_UNAVAILABLE,
                    severity=AlertSeverity.INFO,
                    message="Weather forecast unavailable; recommendation uses sensor data only",
                )
            )
            return None

    def _zone_status(self, farm_id: str, readings: Iterable[ZoneReading]) -> Dict[str, MoistureStatus]:
        """Classify each reporting zone's mean moisture against its own bands."""
        by_zone: Dict[str, List[float]] = {}
        for reading in readings:
            by_zone.setdefault(reading.zone_id, []).append(reading.moisture)
        return {
            zone_id: self.registry.zone_thresholds(farm_id, zone_id).classify(sum(values) / len(values))
            for zone_id, values in sorted(by_zone.items())
        }

    def get_recommendation(self, farm_id: str, *, auto_schedule: bool = True) -> Recommendation:
        """
        Evaluate the farm's latest readings against its targets and the forecast.

        A forecast outage never fails the call: the engine runs on sensor data
        with a confidence penalty and an info alert is raised.
        """
        farm = self.get_farm(farm_id)
        readings = [ZoneReading.from_reading(r) for r in self.latest_readings(farm_id)]
        forecast = self._fetch_forecast(farm)
        settings = ZoneSettings(
            target_moisture=farm.target_moisture,
            liters_per_minute_per_zone=farm.flow_rate_per_zone,
            zone_ids=tuple(farm.zone_ids()),
            zone_targets={zone.zone_id: zone.target_moisture for zone in farm.zones},
        )
        recommendation = replace(
            recommend(readings, forecast, settings, self.policy),
            zone_status=self._zone_status(farm_id, readings),
        )
        logger.info(
            "Recommendation for farm %s: %s (confidence=%.3f, readings=%d, forecast=%s)",
            farm_id,
            recommendation.action,
            recommendation.confidence,
            recommendation.readings_used,
            recommendation.forecast_used,
        )

        if auto_schedule:
            self._maybe_auto_schedule(farm, recommendation)
        return recommendation

    def _maybe_auto_schedule(self, farm: Farm, recommendation: Recommendation) -> Optional[IrrigationRun]:
        config = farm.auto_irrigation
        if not config.enabled:
            return None
        if recommendation.action != RecommendationAction.IRRIGATE_NOW:
            return None
        if recommendation.confidence < config.min_confidence or not recommendation.zones:
            return None
        open_runs = self.lifecycle.open_runs(farm.farm_id)
        if open_runs:
            logger.debug("Farm %s already has open run %s; not auto-scheduling", farm.farm_id, open_runs[0].run_id)
            return None
        try:
            run = self.lifecycle.create(
                farm.farm_id,
                recommendation.zones,
                recommendation.duration_minutes,
                TriggerReason.AI_RECOMMENDATION,
                recommendation=recommendation.to_dict(),
            )
        except ConflictError as exc:
            logger.info("Auto-schedule skipped for farm %s: %s", farm.farm_id, exc)
            return None
        logger.info("Auto-scheduled irrigation run %s for farm %s", run.run_id, farm.farm_id)
        return run

    # ==================== Irrigation runs ====================

    def start_irrigation(
        self,
        farm_id: str,
        zones: Iterable[str],
        duration_minutes: int,
        reason: TriggerReason = TriggerReason.MANUAL,
        *,
        planned_volume: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> IrrigationRun:
        """Create a run that is running immediately."""
        return self.lifecycle.create(
            farm_id,
            zones,
            duration_minutes,
            reason,
            planned_volume,
            start=True,
            notes=sanitize_string(notes, 500),
        )

    def schedule_irrigation(
        self,
        farm_id: str,
        zones: Iterable[str],
        duration_minutes: int,
        reason: TriggerReason = TriggerReason.SCHEDULED,
        *,
        planned_volume: Optional[float] = None,
        scheduled_start: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> IrrigationRun:
        """Create a pending run to be started later."""
        return self.lifecycle.create(
            farm_id,
            zones,
            duration_minutes,
            reason,
            planned_volume,
            scheduled_start,
            notes=sanitize_string(notes, 500),
        )

    def start_run(self, run_id: int) -> IrrigationRun:
        return self.lifecycle.start(run_id)

    def complete_irrigation(
        self, run_id: int, actual_volume: float, moisture_deltas: Iterable[Any] = ()
    ) -> IrrigationRun:
        return self.lifecycle.complete(run_id, actual_volume, moisture_deltas)

    def fail_irrigation(self, run_id: int, reason: str) -> IrrigationRun:
        return self.lifecycle.fail(run_id, sanitize_string(reason, 500) or "unspecified")

    def cancel_irrigation(self, run_id: int, reason: str) -> IrrigationRun:
        return self.lifecycle.cancel(run_id, sanitize_string(reason, 500) or "unspecified")

    def get_run(self, run_id: int) -> IrrigationRun:
        return self.lifecycle.get(run_id)

    def irrigation_history(self, farm_id: str, limit: int = 50) -> List[IrrigationRun]:
        self.get_farm(farm_id)
        return self.lifecycle.history(farm_id, limit)

    def active_run(self, farm_id: str) -> Optional[IrrigationRun]:
        return self.lifecycle.active_run(farm_id)

    def irrigation_statistics(
        self,
        farm_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        return self.lifecycle.statistics(farm_id, start, end)

    # ==================== Alerts ====================

    def list_alerts(self, farm_id: str, only_pending: bool = True) -> List[Alert]:
        self.get_farm(farm_id)
        return self.alerts.list_for_farm(farm_id, only_pending=only_pending)

    def acknowledge_alert(self, alert_id: int) -> Alert:
        return self.alerts.acknowledge(alert_id)

    def check_offline_devices(self, farm_id: Optional[str] = None, *, now: Optional[datetime] = None) -> List[Alert]:
        """Raise ``device_offline`` for every active device silent past its timeout."""
        now = now or utc_now()
        farms = [self.get_farm(farm_id)] if farm_id else self.farm_repo.list(active_only=True)
        raised: List[Alert] = []
        for farm in farms:
            for device in self.device_repo.list_for_farm(farm.farm_id, active_only=True):
                if not device.is_offline(now):
                    continue
                silent_minutes = device.seconds_since_seen(now) / 60
                raised.append(
                    self.alerts.raise_alert(
                        Alert(
                            subject_id=device.device_id,
                            subject_type=SubjectType.DEVICE,
                            farm_id=farm.farm_id,
                            alert_type=AlertType.DEVICE_OFFLINE,
                            severity=AlertSeverity.WARNING,
                            message=f"No data from {device.name or device.device_id} for {silent_minutes:.0f} min",
                            timestamp=now,
                        )
                    )
                )
        if raised:
            logger.info("Offline check raised %d device_offline alerts", len(raised))
        return raised

    def notify_alert(self, alert: Alert) -> List[Future]:
        """Fan an alert out to the farm's recipients on each configured channel."""
        if self.notifier is None:
            return []
        farm = self.farm_repo.get(alert.farm_id)
        if farm is None or not farm.recipients:
            return []
        payload = NotificationPayload(
            title=f"{str(alert.severity).upper()}: {str(alert.alert_type).replace('_', ' ')}",
            message=alert.message,
            severity=str(alert.severity),
            farm_id=alert.farm_id,
            data=alert.to_dict(),
        )
        return [
            self.notifier.deliver(recipient, payload, channel)
            for recipient in farm.recipients
            for channel in farm.channels
        ]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
