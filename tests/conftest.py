"""
Shared test fixtures for the AgroSense irrigation core test suite.

Provides:
- File-backed SQLite database with all tables created (worker threads share it)
- Repository instances wired to the test database
- Stub forecast provider and a recording notification transport
- Service factories for the ingestor, aggregator, lifecycle and facade
- A registered farm with three zones and two devices
- Flask app and test client

Usage:
    def test_example(service, farm, devices):
        reading = service.ingest_reading("dev-1", {"moisture": 40, "battery": 90})
        assert reading.reading_id is not None
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Any, Dict, List, Optional

import pytest

# Ensure repository root is on sys.path so tests can import application modules
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.domain.exceptions import DependencyError  # noqa: E402
from app.domain.recommendation_engine import Forecast  # noqa: E402
from app.enums import NotificationChannel  # noqa: E402
from app.services.application.alert_aggregator import AlertAggregator  # noqa: E402
from app.services.application.irrigation_core_service import IrrigationCoreService  # noqa: E402
from app.services.application.irrigation_lifecycle import IrrigationLifecycle  # noqa: E402
from app.services.application.reading_ingestor import ReadingIngestor  # noqa: E402
from app.services.application.threshold_registry import ThresholdRegistry  # noqa: E402
from app.services.utilities.notification_dispatcher import NotificationDispatcher  # noqa: E402
from app.utils.concurrency import KeyedLockProvider, SerialKeyExecutor  # noqa: E402
from infrastructure.database.repositories import (  # noqa: E402
    AlertRepository,
    DeviceRepository,
    FarmRepository,
    IrrigationRunRepository,
    ReadingRepository,
)
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler  # noqa: E402

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("app").setLevel(logging.WARNING)


CALM_FORECAST = Forecast(temperature_c=22.0, humidity_pct=55.0, wind_kph=8.0, rainfall_mm_next_24h=0.0)


# ========================== Test Doubles ===================================


class StubForecast:
    """Forecast provider returning a fixed outlook, or failing on demand."""

    def __init__(self, forecast: Optional[Forecast] = CALM_FORECAST) -> None:
        self.forecast = forecast
        self.fail = False
        self.calls: List[tuple] = []

    def get_forecast(self, latitude: float, longitude: float) -> Forecast:
        self.calls.append((latitude, longitude))
        if self.fail or self.forecast is None:
            raise DependencyError("Forecast provider unavailable", code=DependencyError.FORECAST_UNAVAILABLE)
        return self.forecast


class RecordingTransport:
    """Notification transport that records every send."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def send(self, recipient, payload, channel, timeout) -> None:
        if self.fail:
            raise ConnectionError("transport down")
        with self._lock:
            self.sent.append({"recipient": recipient, "payload": payload, "channel": channel})


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler(tmp_path):
    """SQLite database with all tables created.

    Each test gets a fresh file so worker threads see the same data and no
    state leaks between tests.
    """
    handler = SQLiteDatabaseHandler(str(tmp_path / "agrosense_test.db"))
    handler.create_tables()
    yield handler
    handler.close_db()


# ========================== Repository Fixtures ============================


@pytest.fixture()
def farm_repo(db_handler):
    return FarmRepository(db_handler)


@pytest.fixture()
def device_repo(db_handler):
    return DeviceRepository(db_handler)


@pytest.fixture()
def reading_repo(db_handler):
    return ReadingRepository(db_handler)


@pytest.fixture()
def alert_repo(db_handler):
    return AlertRepository(db_handler)


@pytest.fixture()
def run_repo(db_handler):
    return IrrigationRunRepository(db_handler)


# ========================== Service Fixtures ===============================


@pytest.fixture()
def locks():
    return KeyedLockProvider()


@pytest.fixture()
def stub_forecast():
    return StubForecast()


@pytest.fixture()
def transport():
    return RecordingTransport()


@pytest.fixture()
def dispatcher(transport):
    """Dispatcher delivering every channel through the recording transport."""
    pool = NotificationDispatcher(
        {NotificationChannel.IN_APP: transport},
        default_transport=transport,
        max_workers=2,
        queue_size=20,
        timeout_seconds=1.0,
    )
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture()
def aggregator(alert_repo, reading_repo, locks):
    return AlertAggregator(alert_repo, reading_repo=reading_repo, lock_provider=locks)


@pytest.fixture()
def registry(device_repo, farm_repo):
    return ThresholdRegistry(device_repo, farm_repo)


@pytest.fixture()
def ingestor(device_repo, reading_repo, aggregator, locks):
    return ReadingIngestor(device_repo, reading_repo, aggregator, lock_provider=locks)


@pytest.fixture()
def lifecycle(run_repo, farm_repo, aggregator, locks):
    return IrrigationLifecycle(
        run_repo,
        farm_repo,
        aggregator,
        lock_provider=locks,
        water_cost_per_liter=0.002,
        energy_cost_per_minute=0.01,
    )


@pytest.fixture()
def service(farm_repo, device_repo, reading_repo, registry, ingestor, aggregator, lifecycle, stub_forecast, dispatcher):
    """IrrigationCoreService over real repositories and stubbed externals."""
    core = IrrigationCoreService(
        farm_repo=farm_repo,
        device_repo=device_repo,
        reading_repo=reading_repo,
        registry=registry,
        ingestor=ingestor,
        alerts=aggregator,
        lifecycle=lifecycle,
        forecast=stub_forecast,
        notifier=dispatcher,
        ingestion_executor=SerialKeyExecutor(4, name="test-ingest"),
    )
    yield core
    core.shutdown()


# ========================== Seed Data ======================================


@pytest.fixture()
def farm_payload() -> Dict[str, Any]:
    return {
        "farm_id": "farm-1",
        "name": "North Field",
        "latitude": 40.42,
        "longitude": -3.70,
        "area": 12.5,
        "target_moisture": 80,
        "flow_rate_per_zone": 5,
        "recipients": ["ops@example.com", "agronomist@example.com"],
        "channels": ["in_app"],
        "zones": [
            {"zone_id": "z1", "name": "Tomatoes", "crop_type": "tomato"},
            {"zone_id": "z2", "name": "Peppers", "crop_type": "pepper"},
            {"zone_id": "z3", "name": "Lettuce", "crop_type": "lettuce"},
        ],
    }


@pytest.fixture()
def farm(service, farm_payload):
    return service.register_farm(farm_payload)


@pytest.fixture()
def devices(service, farm):
    """Two probes with default calibration (dry 595, wet 239) on zones z1 and z2."""
    return [
        service.register_device({"device_id": "dev-1", "farm_id": farm.farm_id, "zone_id": "z1", "name": "Probe 1"}),
        service.register_device({"device_id": "dev-2", "farm_id": farm.farm_id, "zone_id": "z2", "name": "Probe 2"}),
    ]


# ========================== Flask Fixtures =================================


@pytest.fixture()
def app(tmp_path, stub_forecast):
    from app import create_app

    flask_app = create_app(
        {
            "database_path": str(tmp_path / "agrosense_api.db"),
            "log_file": "",
            "forecast_api_key": "",
        },
        forecast_service=stub_forecast,
        handle_signals=False,
    )
    flask_app.config["TESTING"] = True
    yield flask_app
    flask_app.extensions["agrosense_shutdown"]("test teardown")


@pytest.fixture()
def client(app):
    return app.test_client()
