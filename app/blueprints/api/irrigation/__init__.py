"""
Irrigation Run API Blueprint
============================

REST API endpoints for individual irrigation runs.

Endpoints:
- GET  /api/irrigation/runs/<id>            - Get a run
- POST /api/irrigation/runs/<id>/start      - pending -> running
- POST /api/irrigation/runs/<id>/complete   - running -> completed
- POST /api/irrigation/runs/<id>/fail       - running -> failed
- POST /api/irrigation/runs/<id>/cancel     - pending|running -> cancelled

Runs are created through ``POST /api/farms/<farm_id>/irrigation``.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response

from app.blueprints.api._common import (
    get_irrigation_service as _service,
    get_json as _json,
    success as _success,
)
from app.schemas import CancelIrrigationRequest, CompleteIrrigationRequest, FailIrrigationRequest
from app.utils.http import safe_route
from app.utils.validation import parse_model

logger = logging.getLogger(__name__)

irrigation_bp = Blueprint("irrigation", __name__)


@irrigation_bp.get("/runs/<int:run_id>")
@safe_route("Failed to get irrigation run")
def get_run(run_id: int) -> Response:
    return _success(_service().get_run(run_id).to_dict())


@irrigation_bp.post("/runs/<int:run_id>/start")
@safe_route("Failed to start irrigation run")
def start_run(run_id: int) -> Response:
    return _success(_service().start_run(run_id).to_dict())


@irrigation_bp.post("/runs/<int:run_id>/complete")
@safe_route("Failed to complete irrigation run")
def complete_run(run_id: int) -> Response:
    """
    Body: {"actual_volume": 140.0,
           "moisture_deltas": [{"zone_id": "A", "before": 22, "after": 61}]}
    """
    body = parse_model(CompleteIrrigationRequest, _json())
    run = _service().complete_irrigation(
        run_id,
        body.actual_volume,
        [delta.model_dump() for delta in body.moisture_deltas],
    )
    return _success(run.to_dict())


@irrigation_bp.post("/runs/<int:run_id>/fail")
@safe_route("Failed to record irrigation failure")
def fail_run(run_id: int) -> Response:
    body = parse_model(FailIrrigationRequest, _json())
    return _success(_service().fail_irrigation(run_id, body.reason).to_dict())


@irrigation_bp.post("/runs/<int:run_id>/cancel")
@safe_route("Failed to cancel irrigation run")
def cancel_run(run_id: int) -> Response:
    body = parse_model(CancelIrrigationRequest, _json())
    return _success(_service().cancel_irrigation(run_id, body.reason).to_dict())
