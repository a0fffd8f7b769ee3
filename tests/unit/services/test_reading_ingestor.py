from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from app.domain.exceptions import ConflictError, NotFoundError, ValidationError
from app.enums import AlertSeverity, AlertType, QualityBand
from app.utils.time import utc_now

HEALTHY = {"moisture": 55, "battery": 85, "temperature": 21.5, "humidity": 60, "signal_strength": -55}


def _alert_types(reading):
    return {(alert.alert_type, alert.severity) for alert in reading.alerts}


def test_ingest_stores_reading_and_updates_device(ingestor, device_repo, reading_repo, devices):
    reading = ingestor.ingest("dev-1", HEALTHY)

    assert reading.reading_id is not None
    assert reading.farm_id == "farm-1"
    assert reading.zone_id == "z1"
    assert reading.quality_score == 100
    assert reading.quality_band == QualityBand.EXCELLENT
    assert reading.alerts == ()

    device = device_repo.get("dev-1")
    assert device.total_readings == 1
    assert device.last_seen_at is not None
    assert device.last_reading["reading_id"] == reading.reading_id
    assert device.last_reading["moisture"] == 55
    assert device.signal_strength == -55

    assert [r.reading_id for r in reading_repo.for_device("dev-1")] == [reading.reading_id]


def test_raw_value_converted_with_device_calibration(ingestor, devices):
    reading = ingestor.ingest("dev-1", {"moisture_raw": 417, "battery": 90, "temperature": 20, "humidity": 50})
    assert reading.moisture == 50
    assert reading.moisture_raw == 417


@pytest.mark.parametrize(
    "payload",
    [
        {"moisture": 120, "battery": 80},
        {"moisture": -1, "battery": 80},
        {"moisture": 40, "battery": 101},
        {"moisture": 40, "battery": -5},
    ],
)
def test_out_of_range_sample_rejected_without_persisting(ingestor, device_repo, reading_repo, devices, payload):
    with pytest.raises(ValidationError) as exc_info:
        ingestor.ingest("dev-1", payload)

    assert exc_info.value.code == ValidationError.OUT_OF_RANGE
    assert reading_repo.for_device("dev-1") == []
    assert device_repo.get("dev-1").total_readings == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"battery": 80},
        {"moisture": "wet", "battery": 80},
        {"moisture": 40},
    ],
)
def test_malformed_sample_rejected(ingestor, devices, payload):
    with pytest.raises(ValidationError) as exc_info:
        ingestor.ingest("dev-1", payload)
    assert exc_info.value.code == ValidationError.MALFORMED_PAYLOAD


def test_unknown_device(ingestor, devices):
    with pytest.raises(NotFoundError) as exc_info:
        ingestor.ingest("ghost", HEALTHY)
    assert exc_info.value.code == NotFoundError.DEVICE_NOT_FOUND


def test_deactivated_device_rejected(ingestor, service, devices):
    service.deactivate_device("dev-1")
    with pytest.raises(ConflictError) as exc_info:
        ingestor.ingest("dev-1", HEALTHY)
    assert exc_info.value.code == ConflictError.DEVICE_INACTIVE


def test_low_moisture_raises_critical_alert(ingestor, aggregator, devices):
    reading = ingestor.ingest("dev-1", {**HEALTHY, "moisture": 20})

    assert (AlertType.LOW_MOISTURE, AlertSeverity.CRITICAL) in _alert_types(reading)
    pending = aggregator.list_pending("dev-1")
    assert [(a.alert_type, a.severity) for a in pending] == [(AlertType.LOW_MOISTURE, AlertSeverity.CRITICAL)]


def test_high_moisture_raises_warning(ingestor, devices):
    reading = ingestor.ingest("dev-1", {**HEALTHY, "moisture": 95})
    assert _alert_types(reading) == {(AlertType.HIGH_MOISTURE, AlertSeverity.WARNING)}


@pytest.mark.parametrize(
    "battery, severity",
    [
        (8, AlertSeverity.CRITICAL),
        (10, AlertSeverity.CRITICAL),
        (18, AlertSeverity.WARNING),
        (20, AlertSeverity.WARNING),
    ],
)
def test_low_battery_severity(ingestor, devices, battery, severity):
    reading = ingestor.ingest("dev-1", {**HEALTHY, "battery": battery})
    assert (AlertType.LOW_BATTERY, severity) in _alert_types(reading)


def test_zero_battery_on_fresh_sample_is_sensor_error(ingestor, devices):
    reading = ingestor.ingest("dev-1", {**HEALTHY, "battery": 0})
    assert (AlertType.SENSOR_ERROR, AlertSeverity.CRITICAL) in _alert_types(reading)


def test_future_timestamp_is_sensor_error(ingestor, devices):
    now = utc_now()
    ahead = (now + timedelta(hours=1)).isoformat()
    reading = ingestor.ingest("dev-1", {**HEALTHY, "timestamp": ahead}, now=now)
    assert (AlertType.SENSOR_ERROR, AlertSeverity.WARNING) in _alert_types(reading)


def test_raw_value_outside_envelope_is_sensor_error(ingestor, devices):
    reading = ingestor.ingest("dev-1", {"moisture_raw": 900, "battery": 90, "temperature": 20, "humidity": 50})
    assert reading.moisture == 0
    assert (AlertType.SENSOR_ERROR, AlertSeverity.WARNING) in _alert_types(reading)


def test_stale_calibration_raises_calibration_due(ingestor, devices):
    later = utc_now() + timedelta(days=200)
    reading = ingestor.ingest("dev-1", HEALTHY, now=later)
    assert (AlertType.CALIBRATION_DUE, AlertSeverity.INFO) in _alert_types(reading)


def test_disabled_moisture_alerts(ingestor, registry, devices):
    registry.update_device_thresholds("dev-1", moisture_enabled=False)
    reading = ingestor.ingest("dev-1", {**HEALTHY, "moisture": 5})
    assert reading.alerts == ()


def test_concurrent_samples_for_one_device_keep_statistics_consistent(ingestor, device_repo, reading_repo, devices):
    samples = [{**HEALTHY, "moisture": 40 + i} for i in range(20)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda sample: ingestor.ingest("dev-1", sample), samples))

    assert len({r.reading_id for r in results}) == 20
    device = device_repo.get("dev-1")
    assert device.total_readings == 20
    assert len(reading_repo.for_device("dev-1", limit=50)) == 20


def test_devices_ingest_independently(ingestor, device_repo, devices):
    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [pool.submit(ingestor.ingest, device_id, HEALTHY) for device_id in ("dev-1", "dev-2") * 5]
        for future in futures:
            future.result()

    assert device_repo.get("dev-1").total_readings == 5
    assert device_repo.get("dev-2").total_readings == 5


def test_late_sample_does_not_rewind_connectivity(ingestor, service, device_repo, devices):
    now = utc_now()
    fresh = ingestor.ingest("dev-1", {**HEALTHY, "moisture": 61}, now=now)
    late = (now - timedelta(hours=2)).isoformat()
    ingestor.ingest("dev-1", {**HEALTHY, "moisture": 22, "signal_strength": -90, "timestamp": late}, now=now)

    device = device_repo.get("dev-1")
    assert device.total_readings == 2
    assert device.last_seen_at == now
    assert device.last_reading["reading_id"] == fresh.reading_id
    assert device.last_reading["moisture"] == 61
    assert device.signal_strength == -55

    offline = service.check_offline_devices("farm-1", now=now + timedelta(seconds=10))
    assert "dev-1" not in [alert.subject_id for alert in offline]
