"""
Alerts API Blueprint
====================

- GET  /api/alerts/<alert_id>               - Get an alert
- POST /api/alerts/<alert_id>/acknowledge   - Acknowledge (idempotent)

Farm-wide listings live under ``/api/farms/<farm_id>/alerts``.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from app.blueprints.api._common import (
    get_container as _container,
    get_irrigation_service as _service,
    success as _success,
)
from app.utils.http import safe_route

logger = logging.getLogger(__name__)

alerts_api = Blueprint("alerts_api", __name__)


@alerts_api.get("/<int:alert_id>")
@safe_route("Failed to get alert")
def get_alert(alert_id: int) -> Response:
    return _success(_container().alert_aggregator.get(alert_id).to_dict())


@alerts_api.post("/<int:alert_id>/acknowledge")
@safe_route("Failed to acknowledge alert")
def acknowledge_alert(alert_id: int) -> Response:
    alert = _service().acknowledge_alert(alert_id)
    return _success(alert.to_dict(), message="Alert acknowledged")
