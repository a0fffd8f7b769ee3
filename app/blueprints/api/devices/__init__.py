"""
Device Management API Blueprint
===============================

Device API organized into logical sub-modules:
- management.py: registration, calibration, thresholds, deactivation
- readings.py: telemetry ingestion and reading history

All routes are registered under /api/devices prefix.
"""

from __future__ import annotations

import logging

from flask import Blueprint

# Create main blueprint
devices_api = Blueprint("devices_api", __name__)
logger = logging.getLogger("devices_api")

# Import all sub-modules to register their routes
from . import (  # noqa: E402
    management,
    readings,
)

__all__ = ["devices_api"]
