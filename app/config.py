"""
Configuration for the AgroSense Irrigation Core
===============================================
Runtime settings loaded from ``AGROSENSE_*`` environment variables.
Sets up the logging configuration as well.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("AGROSENSE_ENV", "development"))
    DEBUG: bool = field(default_factory=lambda: _env_bool("AGROSENSE_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("AGROSENSE_LOG_LEVEL", "INFO"))
    log_file: str = field(default_factory=lambda: os.getenv("AGROSENSE_LOG_FILE", "logs/agrosense.log"))

    database_path: str = field(default_factory=lambda: os.getenv("AGROSENSE_DATABASE_PATH", "database/agrosense.db"))
    db_busy_timeout_ms: int = field(default_factory=lambda: _env_int("AGROSENSE_DB_BUSY_TIMEOUT_MS", 5000))

    # Forecast provider (OpenWeatherMap)
    forecast_api_url: str = field(
        default_factory=lambda: os.getenv("AGROSENSE_FORECAST_API_URL", "https://api.openweathermap.org/data/2.5")
    )
    forecast_api_key: str = field(default_factory=lambda: os.getenv("AGROSENSE_FORECAST_API_KEY", ""))
    forecast_timeout_seconds: float = field(default_factory=lambda: _env_float("AGROSENSE_FORECAST_TIMEOUT", 5.0))
    forecast_cache_minutes: int = field(default_factory=lambda: _env_int("AGROSENSE_FORECAST_CACHE_MINUTES", 5))

    # Notification delivery
    notification_workers: int = field(default_factory=lambda: _env_int("AGROSENSE_NOTIFY_WORKERS", 2))
    notification_queue_size: int = field(default_factory=lambda: _env_int("AGROSENSE_NOTIFY_QUEUE_SIZE", 100))
    notification_timeout_seconds: float = field(
        default_factory=lambda: _env_float("AGROSENSE_NOTIFY_TIMEOUT", 5.0)
    )
    notification_webhook_url: str = field(default_factory=lambda: os.getenv("AGROSENSE_NOTIFY_WEBHOOK_URL", ""))

    # Ingestion
    ingestion_workers: int = field(default_factory=lambda: _env_int("AGROSENSE_INGEST_WORKERS", 4))
    calibration_max_age_days: int = field(default_factory=lambda: _env_int("AGROSENSE_CALIBRATION_MAX_AGE_DAYS", 180))

    # Recommendation and irrigation economics
    recommendation_max_reading_age_hours: float = field(
        default_factory=lambda: _env_float("AGROSENSE_MAX_READING_AGE_HOURS", 6.0)
    )
    default_flow_rate_per_zone: float = field(default_factory=lambda: _env_float("AGROSENSE_FLOW_RATE_PER_ZONE", 5.0))
    water_cost_per_liter: float = field(default_factory=lambda: _env_float("AGROSENSE_WATER_COST_PER_LITER", 0.002))
    energy_cost_per_minute: float = field(default_factory=lambda: _env_float("AGROSENSE_ENERGY_COST_PER_MINUTE", 0.01))

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.notification_workers < 1 or self.ingestion_workers < 1:
            raise ValueError("Worker counts must be at least 1.")
        if self.forecast_timeout_seconds <= 0 or self.notification_timeout_seconds <= 0:
            raise ValueError("Timeouts must be positive.")
        if self.default_flow_rate_per_zone <= 0:
            raise ValueError("AGROSENSE_FLOW_RATE_PER_ZONE must be positive.")

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "DEBUG": self.DEBUG,
            "DATABASE_PATH": self.database_path,
            "JSON_SORT_KEYS": False,
        }


def setup_logging(debug: bool = False, log_file: str = "logs/agrosense.log") -> None:
    """Setup logging configuration."""
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    log_level = logging.DEBUG if debug else logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Keep existing handlers but avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "agrosense_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "agrosense_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "agrosense_console"
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file and log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "agrosense_file"
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"agrosense_console", "agrosense_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    if _env_bool("AGROSENSE_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    config = AppConfig()
    if config.environment == "production" and not config.forecast_api_key:
        import logging

        logging.getLogger("config_loader").warning(
            "AGROSENSE_FORECAST_API_KEY is not set; recommendations will run on sensor data only"
        )
    return config
