import logging
import shutil
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from infrastructure.database.ops.alerts import AlertOperations
from infrastructure.database.ops.devices import DeviceOperations
from infrastructure.database.ops.farms import FarmOperations
from infrastructure.database.ops.irrigation import IrrigationOperations
from infrastructure.database.ops.readings import ReadingOperations
from infrastructure.database.utils import dict_factory

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS Farm (
    farm_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    area REAL,
    target_moisture REAL NOT NULL DEFAULT 80,
    flow_rate_per_zone REAL NOT NULL DEFAULT 5,
    auto_irrigation TEXT,
    recipients TEXT,
    channels TEXT,
    total_irrigation_events INTEGER NOT NULL DEFAULT 0,
    total_water_used REAL NOT NULL DEFAULT 0,
    last_irrigation_at TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS Zone (
    farm_id TEXT NOT NULL REFERENCES Farm(farm_id),
    zone_id TEXT NOT NULL,
    name TEXT,
    area REAL,
    crop_type TEXT,
    target_moisture REAL NOT NULL DEFAULT 80,
    thresholds TEXT,
    PRIMARY KEY (farm_id, zone_id)
);

CREATE TABLE IF NOT EXISTS Device (
    device_id TEXT PRIMARY KEY,
    farm_id TEXT NOT NULL,
    zone_id TEXT NOT NULL,
    name TEXT,
    dry_value REAL NOT NULL,
    wet_value REAL NOT NULL,
    last_calibrated_at TEXT,
    calibration_notes TEXT,
    thresholds TEXT,
    last_seen_at TEXT,
    signal_strength REAL,
    total_readings INTEGER NOT NULL DEFAULT 0,
    last_reading TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    FOREIGN KEY (farm_id, zone_id) REFERENCES Zone(farm_id, zone_id)
);
CREATE INDEX IF NOT EXISTS ix_device_farm ON Device(farm_id);

CREATE TABLE IF NOT EXISTS Reading (
    reading_id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id TEXT NOT NULL REFERENCES Device(device_id),
    farm_id TEXT NOT NULL,
    zone_id TEXT NOT NULL,
    moisture REAL NOT NULL CHECK (moisture BETWEEN 0 AND 100),
    moisture_raw REAL,
    temperature REAL,
    humidity REAL,
    battery REAL NOT NULL CHECK (battery BETWEEN 0 AND 100),
    signal_strength REAL,
    quality_score INTEGER NOT NULL,
    quality_band TEXT NOT NULL,
    alerts TEXT,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS ix_reading_device_ts ON Reading(device_id, timestamp DESC);
CREATE INDEX IF NOT EXISTS ix_reading_farm_ts ON Reading(farm_id, timestamp DESC);

CREATE TABLE IF NOT EXISTS Alert (
    alert_id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject_id TEXT NOT NULL,
    subject_type TEXT NOT NULL,
    farm_id TEXT NOT NULL,
    alert_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    message TEXT,
    timestamp TEXT NOT NULL,
    first_seen TEXT NOT NULL,
    occurrences INTEGER NOT NULL DEFAULT 1,
    acknowledged INTEGER NOT NULL DEFAULT 0,
    acknowledged_at TEXT
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_alert_pending
    ON Alert(subject_id, alert_type) WHERE acknowledged = 0;
CREATE INDEX IF NOT EXISTS ix_alert_farm ON Alert(farm_id, acknowledged, timestamp DESC);

CREATE TABLE IF NOT EXISTS IrrigationRun (
    run_id INTEGER PRIMARY KEY AUTOINCREMENT,
    farm_id TEXT NOT NULL REFERENCES Farm(farm_id),
    zones TEXT NOT NULL,
    duration_minutes INTEGER NOT NULL,
    flow_rate_per_zone REAL NOT NULL,
    planned_volume REAL NOT NULL,
    actual_volume REAL,
    trigger_reason TEXT NOT NULL,
    status TEXT NOT NULL,
    scheduled_start TEXT,
    scheduled_end TEXT,
    actual_start TEXT,
    actual_end TEXT,
    efficiency INTEGER,
    moisture_deltas TEXT,
    alerts TEXT,
    cost TEXT,
    notes TEXT,
    recommendation TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT,
    CHECK (actual_end IS NULL OR actual_start IS NULL OR actual_end >= actual_start)
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_run_running
    ON IrrigationRun(farm_id) WHERE status = 'running';
CREATE INDEX IF NOT EXISTS ix_run_farm_created ON IrrigationRun(farm_id, created_at DESC);
"""


class SQLiteDatabaseHandler(
    FarmOperations,
    DeviceOperations,
    ReadingOperations,
    AlertOperations,
    IrrigationOperations,
):
    """Thread-safe SQLite handler decoupled from Flask globals.

    Each thread gets its own connection; writers wait up to
    ``busy_timeout_ms`` for the database lock.
    """

    def __init__(self, database_path: str, *, busy_timeout_ms: int = 5000) -> None:
        self._database_path = database_path
        self._busy_timeout_ms = busy_timeout_ms
        self._local = threading.local()

        # Ensure the directory for the database file exists
        db_path = Path(database_path)
        if database_path != ":memory:" and not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.info("Created database directory: %s", db_path.parent)

    @property
    def database_path(self) -> str:
        return self._database_path

    def get_db(self) -> sqlite3.Connection:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is None:
            try:
                connection = self._open_connection()
            except sqlite3.DatabaseError as exc:
                if self._is_corruption_error(exc):
                    logger.error("Database appears corrupt (%s). Recreating a fresh database.", exc)
                    self._quarantine_corrupt_db()
                    connection = self._open_connection()
                else:
                    raise
            self._local.connection = connection
        return connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._database_path,
            check_same_thread=False,
            timeout=self._busy_timeout_ms / 1000.0,
        )
        try:
            connection.row_factory = dict_factory
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _is_corruption_error(self, exc: sqlite3.Error) -> bool:
        message = str(exc).lower()
        return (
            "database disk image is malformed" in message
            or "file is not a database" in message
            or "file is encrypted or is not a database" in message
        )

    def _quarantine_corrupt_db(self) -> Optional[Path]:
        db_path = Path(self._database_path)
        if not db_path.exists():
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        quarantine_dir = db_path.parent / "corrupt"
        quarantine_dir.mkdir(parents=True, exist_ok=True)

        suffix = db_path.suffix or ".db"
        quarantined = quarantine_dir / f"{db_path.stem}_corrupt_{timestamp}{suffix}"
        shutil.move(str(db_path), str(quarantined))
        for sidecar_suffix in ("-wal", "-shm"):
            sidecar = Path(f"{db_path}{sidecar_suffix}")
            if sidecar.exists():
                shutil.move(str(sidecar), str(quarantine_dir / f"{sidecar.name}_{timestamp}"))
        logger.warning("Quarantined corrupt database to %s", quarantined)
        return quarantined

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """Configure SQLite connection.

        - WAL mode: readers do not block the single writer
        - NORMAL synchronous: safe with WAL
        - busy_timeout: writers queue instead of failing with "database is locked"
        - foreign_keys: readings and runs must reference known devices and farms
        """
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
        connection.execute("PRAGMA foreign_keys=ON")
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close_db(self, _e: Optional[BaseException] = None) -> None:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            delattr(self._local, "connection")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield this thread's connection; commit on success, roll back on error."""
        conn = self.get_db()
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """``BEGIN IMMEDIATE`` transaction: takes the write lock up front."""
        conn = self.get_db()
        if conn.in_transaction:
            conn.commit()
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the necessary tables and indexes if they do not already exist."""
        db = self.get_db()
        db.executescript(SCHEMA)
        db.commit()
        logger.info("Database schema ready at %s", self._database_path)
