"""
System Health Endpoints
=======================

Liveness plus the state of the store, the notification pool and the
forecast cache.
"""

from __future__ import annotations

import logging
import sqlite3

from flask import Blueprint, Response

from app.blueprints.api._common import (
    get_container as _container,
    success as _success,
)
from app.utils.http import safe_route
from app.utils.time import iso_now

logger = logging.getLogger("health_api")


def register_system_routes(health_api: Blueprint):
    """Register system health routes on the blueprint."""

    @health_api.get("/ping")
    @safe_route("Failed to handle ping request")
    def ping() -> Response:
        """
        Basic liveness check for monitoring tools.

        Returns:
            {"status": "ok", "timestamp": "..."}
        """
        return _success({"status": "ok", "timestamp": iso_now()})

    @health_api.get("/system")
    @safe_route("Failed to get system health")
    def get_system_health() -> Response:
        """
        Returns:
            {
                "status": "healthy|degraded",
                "database": {"ok": true, "path": "..."},
                "notifications": {...dispatcher counters...},
                "forecast_cache": {...} | null,
                "timestamp": "..."
            }
        """
        container = _container()

        database_ok = True
        try:
            container.database.get_db().execute("SELECT 1").fetchone()
        except sqlite3.Error as exc:
            logger.warning("Database health check failed: %s", exc)
            database_ok = False

        notifications = container.dispatcher.get_metrics()
        cache_stats = getattr(container.forecast_service, "cache_stats", None)
        degraded = not database_ok or notifications["dropped"] > 0

        return _success(
            {
                "status": "degraded" if degraded else "healthy",
                "database": {"ok": database_ok, "path": container.database.database_path},
                "notifications": notifications,
                "forecast_cache": cache_stats() if callable(cache_stats) else None,
                "timestamp": iso_now(),
            }
        )
