"""Centralized exception hierarchy for the AgroSense irrigation core.

All domain and service exceptions inherit from :class:`AgroSenseError` so that
callers can catch a single base class when they need a broad safety net, yet
still match on specific subclasses where narrower handling is appropriate.

Every error carries a machine-readable ``code`` (e.g. ``IRRIGATION_ACTIVE``)
next to the human-readable message. Blueprint-level error handling (see
``app/utils/http.safe_route``) maps these to HTTP status codes.

Hierarchy
---------
::

    AgroSenseError (base, maps to 500)
    ├── ValidationError      (400, malformed / out-of-range input)
    ├── NotFoundError        (404, unknown device / farm / run / alert)
    ├── ConflictError        (409, active run, second terminal transition)
    ├── InvariantViolation   (422, request breaks a domain invariant)
    ├── DependencyError      (502, forecast / notification unavailable)
    ├── RepositoryError      (500, persistence failure)
    └── ConfigurationError   (500, missing / invalid config)
"""

from __future__ import annotations


class AgroSenseError(Exception):
    """Base exception for all AgroSense errors.

    Parameters
    ----------
    message:
        Human-readable description.
    code:
        Reason code surfaced to callers; defaults to the class ``default_code``.
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "", *, code: str | None = None, detail: dict | None = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self), "detail": self.detail}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(AgroSenseError):
    """Caller supplied invalid or out-of-range input (HTTP 400)."""

    http_status: int = 400
    default_code: str = "MALFORMED_PAYLOAD"

    OUT_OF_RANGE = "OUT_OF_RANGE"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    INVALID_CALIBRATION = "INVALID_CALIBRATION"
    INVALID_DURATION = "INVALID_DURATION"


class NotFoundError(AgroSenseError):
    """Requested entity does not exist (HTTP 404)."""

    http_status: int = 404
    default_code: str = "NOT_FOUND"

    DEVICE_NOT_FOUND = "DEVICE_NOT_FOUND"
    FARM_NOT_FOUND = "FARM_NOT_FOUND"
    RUN_NOT_FOUND = "RUN_NOT_FOUND"
    ALERT_NOT_FOUND = "ALERT_NOT_FOUND"


class ConflictError(AgroSenseError):
    """Operation conflicts with existing state (HTTP 409)."""

    http_status: int = 409
    default_code: str = "CONFLICT"

    IRRIGATION_ACTIVE = "IRRIGATION_ACTIVE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    DEVICE_INACTIVE = "DEVICE_INACTIVE"
    DUPLICATE = "DUPLICATE"


class InvariantViolation(AgroSenseError):
    """Request would break a domain invariant (HTTP 422).

    Aborts the offending operation only; raised before anything is written.
    """

    http_status: int = 422
    default_code: str = "INVARIANT_VIOLATION"

    ZONE_NOT_IN_FARM = "ZONE_NOT_IN_FARM"


# ── Server errors (5xx) ──────────────────────────────────────────────


class DependencyError(AgroSenseError):
    """Forecast provider or notification transport unavailable (HTTP 502)."""

    http_status: int = 502
    default_code: str = "DEPENDENCY_UNAVAILABLE"

    FORECAST_UNAVAILABLE = "FORECAST_UNAVAILABLE"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"


class RepositoryError(AgroSenseError):
    """Database / persistence layer failure (HTTP 500)."""

    http_status: int = 500
    default_code: str = "STORAGE_ERROR"


class ConfigurationError(AgroSenseError):
    """Missing or invalid application configuration (HTTP 500)."""

    http_status: int = 500
    default_code: str = "CONFIGURATION_ERROR"
