"""
Health API Blueprint
====================

Health monitoring endpoints.

Routes:
- GET /api/health/ping     - Basic liveness check
- GET /api/health/system   - Database, notification and forecast status
"""

from __future__ import annotations

import logging

from flask import Blueprint

logger = logging.getLogger("health_api")

# Create the blueprint
health_api = Blueprint("health_api", __name__)

from app.blueprints.api.health.system import register_system_routes  # noqa: E402

register_system_routes(health_api)

__all__ = ["health_api"]
