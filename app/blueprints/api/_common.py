"""
Blueprint Common Utilities
==========================

Shared helper functions for all API blueprints.
Import these instead of duplicating helper code in each blueprint.

Usage:
    from app.blueprints.api._common import (
        get_container, get_json, success, fail, get_irrigation_service,
    )

This module centralizes:
- Service container access
- Request JSON parsing
- Standardized response helpers
- Query-string parsing
"""
from __future__ import annotations

import logging
from typing import Any

from flask import current_app, request

from app.utils.http import error_response, success_response
from app.utils.validation import parse_model

logger = logging.getLogger("api._common")

# Upper bound for ``?limit=`` on list endpoints
MAX_LIMIT = 500

# ============================================================================
# CONTAINER ACCESS
# ============================================================================


def get_container():
    """
    Get the service container from Flask app config.

    Returns:
        ServiceContainer: The application service container

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_irrigation_service():
    """Get the irrigation core service from the container."""
    return get_container().irrigation_service


# ============================================================================
# REQUEST HELPERS
# ============================================================================


def get_json() -> Any:
    """
    Get JSON request body with silent failure.

    Returns:
        Parsed JSON body, or an empty dict if the body is missing or not JSON.
        Non-object bodies are returned as-is so schema validation can reject them.
    """
    body = request.get_json(silent=True)
    return {} if body is None else body


def get_limit(default: int = 50) -> int:
    """Read ``?limit=`` clamped to ``1..MAX_LIMIT``."""
    limit = request.args.get("limit", default, type=int)
    return max(1, min(limit or default, MAX_LIMIT))


def get_flag(name: str, default: bool = False) -> bool:
    """Read a boolean query flag (``1``, ``true``, ``yes``)."""
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_query(schema):
    """Validate the query string against a pydantic ``schema``."""
    return parse_model(schema, request.args.to_dict())


# ============================================================================
# RESPONSE HELPERS
# ============================================================================


def success(data: dict | list | None = None, status: int = 200, *, message: str | None = None):
    """
    Standard success response wrapper.

    Returns:
        Flask Response with format: {"ok": true, "data": ..., "error": null}
    """
    return success_response(data, status, message=message)


def fail(message: str, status: int = 400, *, code: str | None = None, details: dict | None = None):
    """
    Standard error response wrapper.

    Returns:
        Flask Response with format: {"ok": false, "data": null, "error": {...}}
    """
    return error_response(message, status, code=code, details=details)
