from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.config import AppConfig
from app.enums import NotificationChannel
from app.services.application.alert_aggregator import AlertAggregator
from app.services.application.irrigation_core_service import IrrigationCoreService
from app.services.application.irrigation_lifecycle import IrrigationLifecycle
from app.services.application.reading_ingestor import ReadingIngestor
from app.services.application.threshold_registry import ThresholdRegistry
from app.services.protocols import ForecastProvider
from app.services.utilities.forecast_service import ForecastService
from app.services.utilities.notification_dispatcher import (
    LoggingTransport,
    NotificationDispatcher,
    WebhookTransport,
)
from app.utils.concurrency import KeyedLockProvider, SerialKeyExecutor
from infrastructure.database.repositories import (
    AlertRepository,
    DeviceRepository,
    FarmRepository,
    IrrigationRunRepository,
    ReadingRepository,
)
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage core backend services."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    farm_repo: FarmRepository
    device_repo: DeviceRepository
    reading_repo: ReadingRepository
    alert_repo: AlertRepository
    run_repo: IrrigationRunRepository
    locks: KeyedLockProvider
    forecast_service: Optional[ForecastProvider]
    dispatcher: NotificationDispatcher
    registry: ThresholdRegistry
    alert_aggregator: AlertAggregator
    ingestor: ReadingIngestor
    lifecycle: IrrigationLifecycle
    irrigation_service: IrrigationCoreService

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        forecast_service: Optional[ForecastProvider] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            forecast_service: Override the OpenWeatherMap provider (tests pass a stub)
            dispatcher: Override the notification dispatcher
        """
        logger.info("Building ServiceContainer (database=%s)", config.database_path)
        database = SQLiteDatabaseHandler(config.database_path, busy_timeout_ms=config.db_busy_timeout_ms)
        database.create_tables()

        farm_repo = FarmRepository(database)
        device_repo = DeviceRepository(database)
        reading_repo = ReadingRepository(database)
        alert_repo = AlertRepository(database)
        run_repo = IrrigationRunRepository(database)

        locks = KeyedLockProvider()
        if forecast_service is None:
            forecast_service = ForecastService(
                config.forecast_api_key or None,
                api_url=config.forecast_api_url,
                timeout_seconds=config.forecast_timeout_seconds,
                cache_minutes=config.forecast_cache_minutes,
            )

        if dispatcher is None:
            logging_transport = LoggingTransport()
            transports = {NotificationChannel.IN_APP: logging_transport}
            if config.notification_webhook_url:
                transports[NotificationChannel.WEBHOOK] = WebhookTransport(config.notification_webhook_url)
            dispatcher = NotificationDispatcher(
                transports,
                default_transport=logging_transport,
                max_workers=config.notification_workers,
                queue_size=config.notification_queue_size,
                timeout_seconds=config.notification_timeout_seconds,
            )

        registry = ThresholdRegistry(device_repo, farm_repo)
        alert_aggregator = AlertAggregator(alert_repo, reading_repo=reading_repo, lock_provider=locks)
        ingestor = ReadingIngestor(
            device_repo,
            reading_repo,
            alert_aggregator,
            lock_provider=locks,
            calibration_max_age_days=config.calibration_max_age_days,
        )
        lifecycle = IrrigationLifecycle(
            run_repo,
            farm_repo,
            alert_aggregator,
            lock_provider=locks,
            water_cost_per_liter=config.water_cost_per_liter,
            energy_cost_per_minute=config.energy_cost_per_minute,
        )
        irrigation_service = IrrigationCoreService(
            farm_repo=farm_repo,
            device_repo=device_repo,
            reading_repo=reading_repo,
            registry=registry,
            ingestor=ingestor,
            alerts=alert_aggregator,
            lifecycle=lifecycle,
            forecast=forecast_service,
            notifier=dispatcher,
            ingestion_executor=SerialKeyExecutor(config.ingestion_workers, name="ingest"),
            max_reading_age_hours=config.recommendation_max_reading_age_hours,
            default_flow_rate_per_zone=config.default_flow_rate_per_zone,
        )

        logger.info("ServiceContainer built successfully.")
        return cls(
            config=config,
            database=database,
            farm_repo=farm_repo,
            device_repo=device_repo,
            reading_repo=reading_repo,
            alert_repo=alert_repo,
            run_repo=run_repo,
            locks=locks,
            forecast_service=forecast_service,
            dispatcher=dispatcher,
            registry=registry,
            alert_aggregator=alert_aggregator,
            ingestor=ingestor,
            lifecycle=lifecycle,
            irrigation_service=irrigation_service,
        )

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        self.irrigation_service.shutdown()
        self.dispatcher.shutdown()
        self.database.close_db()
        logger.info("ServiceContainer shutdown complete.")
