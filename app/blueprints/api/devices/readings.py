"""
Device Reading Endpoints
========================

- POST /api/devices/<device_id>/readings            - Ingest one telemetry sample
- GET  /api/devices/<device_id>/readings            - Recent readings, newest first
- GET  /api/devices/<device_id>/readings/averages   - Averages over a window

The GET endpoints accept ``?range=1h|24h|7d|30d`` or ``?since=<iso>`` and
``?until=<iso>``; without them the whole history is considered.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Tuple

from flask import Response

from app.blueprints.api._common import (
    get_irrigation_service as _service,
    get_json as _json,
    get_limit,
    get_query,
    success as _success,
)
from app.schemas.readings import ReadingWindowQuery
from app.utils.http import safe_route
from app.utils.time import coerce_datetime, utc_now

from . import devices_api

logger = logging.getLogger(__name__)


def _window() -> Tuple[Optional[datetime], Optional[datetime]]:
    query = get_query(ReadingWindowQuery)
    return coerce_datetime(query.start(utc_now())), coerce_datetime(query.until)


@devices_api.post("/<device_id>/readings")
@safe_route("Failed to ingest reading")
def ingest_reading(device_id: str) -> Response:
    """
    Accept one soil sample.

    Body: {"moisture": 42} or {"moisture_raw": 417}, plus "battery" and the
    optional "temperature", "humidity", "signal_strength", "timestamp".
    """
    reading = _service().ingest_reading(device_id, _json())
    return _success(reading.to_dict(), 201)


@devices_api.get("/<device_id>/readings")
@safe_route("Failed to get readings")
def list_readings(device_id: str) -> Response:
    since, until = _window()
    readings = _service().device_readings(device_id, get_limit(100), since=since, until=until)
    return _success([reading.to_dict() for reading in readings])


@devices_api.get("/<device_id>/readings/averages")
@safe_route("Failed to get reading averages")
def reading_averages(device_id: str) -> Response:
    since, until = _window()
    return _success(_service().reading_averages(device_id, since=since, until=until))
