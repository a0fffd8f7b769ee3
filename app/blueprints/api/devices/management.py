"""
Device Management Endpoints
===========================

- POST /api/devices                              - Register a probe to a farm zone
- GET  /api/devices/<device_id>                  - Device details
- PUT  /api/devices/<device_id>/calibration      - Store dry/wet calibration
- PATCH /api/devices/<device_id>/thresholds      - Update alert thresholds
- POST /api/devices/<device_id>/deactivate       - Stop accepting readings
- GET  /api/devices/<device_id>/alerts           - Pending alerts, most urgent first
"""

from __future__ import annotations

import logging

from flask import Response

from app.blueprints.api._common import (
    get_container as _container,
    get_irrigation_service as _service,
    get_json as _json,
    success as _success,
)
from app.utils.http import safe_route

from . import devices_api

logger = logging.getLogger(__name__)


@devices_api.post("")
@safe_route("Failed to register device")
def register_device() -> Response:
    device = _service().register_device(_json())
    return _success(device.to_dict(), 201, message="Device registered")


@devices_api.get("/<device_id>")
@safe_route("Failed to get device")
def get_device(device_id: str) -> Response:
    return _success(_service().get_device(device_id).to_dict())


@devices_api.put("/<device_id>/calibration")
@safe_route("Failed to calibrate device")
def calibrate_device(device_id: str) -> Response:
    """Body: {"dry_value": 595, "wet_value": 239, "notes": "..."}"""
    calibration = _service().calibrate_device(device_id, _json())
    return _success(calibration.to_dict(), message="Calibration saved")


@devices_api.patch("/<device_id>/thresholds")
@safe_route("Failed to update thresholds")
def update_thresholds(device_id: str) -> Response:
    thresholds = _service().update_device_thresholds(device_id, _json())
    return _success(thresholds.to_dict())


@devices_api.post("/<device_id>/deactivate")
@safe_route("Failed to deactivate device")
def deactivate_device(device_id: str) -> Response:
    return _success(_service().deactivate_device(device_id).to_dict())


@devices_api.get("/<device_id>/alerts")
@safe_route("Failed to list device alerts")
def device_alerts(device_id: str) -> Response:
    _service().get_device(device_id)
    alerts = _container().alert_aggregator.list_pending(device_id)
    return _success([alert.to_dict() for alert in alerts])
