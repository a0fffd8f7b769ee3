"""
Farms API Blueprint
===================

Endpoints:
- POST /api/farms                              - Register a farm with its zones
- GET  /api/farms                              - List active farms
- GET  /api/farms/<farm_id>                    - Farm details and statistics
- GET  /api/farms/<farm_id>/recommendation     - Irrigation recommendation
- POST /api/farms/<farm_id>/irrigation         - Start (or schedule) a run
- GET  /api/farms/<farm_id>/irrigation         - Run history
- GET  /api/farms/<farm_id>/irrigation/active  - Currently running run
- GET  /api/farms/<farm_id>/irrigation/statistics - Run totals over a date range
- GET  /api/farms/<farm_id>/alerts?pending=1   - Farm alerts, most urgent first
- GET  /api/farms/<farm_id>/readings/latest    - Latest reading per device
- POST /api/farms/<farm_id>/offline-check      - Raise device_offline alerts
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from app.blueprints.api._common import (
    get_flag,
    get_irrigation_service as _service,
    get_json as _json,
    get_limit,
    get_query,
    success as _success,
)
from app.schemas.irrigation import IrrigationStatisticsQuery, StartIrrigationRequest
from app.utils.http import safe_route
from app.utils.time import coerce_datetime
from app.utils.validation import parse_model

logger = logging.getLogger(__name__)

farms_api = Blueprint("farms_api", __name__)


@farms_api.post("")
@safe_route("Failed to register farm")
def register_farm() -> Response:
    farm = _service().register_farm(_json())
    return _success(farm.to_dict(), 201, message="Farm registered")


@farms_api.get("")
@safe_route("Failed to list farms")
def list_farms() -> Response:
    return _success([farm.to_dict() for farm in _service().list_farms()])


@farms_api.get("/<farm_id>")
@safe_route("Failed to get farm")
def get_farm(farm_id: str) -> Response:
    return _success(_service().get_farm(farm_id).to_dict())


@farms_api.get("/<farm_id>/recommendation")
@safe_route("Failed to compute recommendation")
def get_recommendation(farm_id: str) -> Response:
    """
    Evaluate the farm's latest readings and weather forecast.

    Query params:
    - auto_schedule: allow auto-irrigation to create a run (default true)
    """
    recommendation = _service().get_recommendation(farm_id, auto_schedule=get_flag("auto_schedule", True))
    return _success(recommendation.to_dict())


@farms_api.post("/<farm_id>/irrigation")
@safe_route("Failed to start irrigation")
def start_irrigation(farm_id: str) -> Response:
    """
    Create an irrigation run.

    Body: {"zones": [...], "duration_minutes": 30, "reason": "manual",
           "start_now": true, "scheduled_start": null, "planned_volume": null}
    """
    body = parse_model(StartIrrigationRequest, _json())
    service = _service()
    if body.start_now:
        run = service.start_irrigation(
            farm_id,
            body.zones,
            body.duration_minutes,
            body.reason,
            planned_volume=body.planned_volume,
            notes=body.notes,
        )
    else:
        run = service.schedule_irrigation(
            farm_id,
            body.zones,
            body.duration_minutes,
            body.reason,
            planned_volume=body.planned_volume,
            scheduled_start=body.scheduled_start,
            notes=body.notes,
        )
    return _success(run.to_dict(), 201)


@farms_api.get("/<farm_id>/irrigation")
@safe_route("Failed to get irrigation history")
def irrigation_history(farm_id: str) -> Response:
    runs = _service().irrigation_history(farm_id, get_limit())
    return _success([run.to_dict() for run in runs])


@farms_api.get("/<farm_id>/irrigation/statistics")
@safe_route("Failed to get irrigation statistics")
def irrigation_statistics(farm_id: str) -> Response:
    """Run totals for runs scheduled within ``?start=<iso>&end=<iso>`` (both optional)."""
    query = get_query(IrrigationStatisticsQuery)
    stats = _service().irrigation_statistics(farm_id, coerce_datetime(query.start), coerce_datetime(query.end))
    return _success(stats)


@farms_api.get("/<farm_id>/irrigation/active")
@safe_route("Failed to get active irrigation")
def active_irrigation(farm_id: str) -> Response:
    service = _service()
    service.get_farm(farm_id)
    run = service.active_run(farm_id)
    return _success(run.to_dict() if run else None)


@farms_api.get("/<farm_id>/alerts")
@safe_route("Failed to list alerts")
def list_alerts(farm_id: str) -> Response:
    alerts = _service().list_alerts(farm_id, only_pending=get_flag("pending", False))
    return _success([alert.to_dict() for alert in alerts])


@farms_api.get("/<farm_id>/readings/latest")
@safe_route("Failed to get latest readings")
def latest_readings(farm_id: str) -> Response:
    return _success([reading.to_dict() for reading in _service().latest_readings(farm_id)])


@farms_api.post("/<farm_id>/offline-check")
@safe_route("Failed to check offline devices")
def check_offline(farm_id: str) -> Response:
    alerts = _service().check_offline_devices(farm_id)
    return _success([alert.to_dict() for alert in alerts])
