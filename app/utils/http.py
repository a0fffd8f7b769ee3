from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from flask import Response, jsonify

from app.utils.time import iso_now

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Generic user-facing messages: never leak internals
# ---------------------------------------------------------------------------
_GENERIC_MESSAGES: dict[int, str] = {
    400: "Invalid request",
    404: "Resource not found",
    409: "Conflict",
    422: "Unprocessable entity",
    500: "An internal error occurred",
    502: "Upstream dependency unavailable",
}


def safe_error(
    exc: BaseException,
    status: int = 500,
    *,
    context: str = "",
    code: str | None = None,
) -> Response:
    """Return a generic error response while logging the real exception.

    Parameters
    ----------
    exc:
        The caught exception: logged server-side, **never** sent to the
        client.
    status:
        HTTP status code for the response (determines the generic message).
    context:
        Optional human-readable context string logged alongside *exc*,
        e.g. ``"completing irrigation run"``.
    code:
        Reason code forwarded to the client, if the error carries one.
    """
    _log.error("API error [%s] %s: %s", status, context, exc, exc_info=exc)
    message = _GENERIC_MESSAGES.get(status, _GENERIC_MESSAGES[500])
    return error_response(message, status, code=code)


def success_response(
    data: dict | list | None = None,
    status: int = 200,
    *,
    message: str | None = None,
) -> Response:
    payload: dict[str, Any] = {"ok": True, "data": data, "error": None}
    if message is not None:
        payload["message"] = message
    response = jsonify(payload)
    response.status_code = status
    return response


def error_response(
    message: str,
    status: int = 500,
    *,
    code: str | None = None,
    details: dict | None = None,
) -> Response:
    payload: dict[str, Any] = {"message": message, "timestamp": iso_now()}
    if code:
        payload["code"] = code
    if details:
        payload["details"] = details
    response = jsonify({"ok": False, "data": None, "error": payload})
    response.status_code = status
    return response


# ---------------------------------------------------------------------------
# Route decorator: eliminates per-route try/except boilerplate
# ---------------------------------------------------------------------------


def safe_route(
    error_message: str = "An internal error occurred",
    *,
    error_status: int = 500,
) -> Callable:
    """Decorator that wraps a Flask route handler with standardized error handling.

    Catches :class:`~app.domain.exceptions.AgroSenseError` subclasses and maps
    them to the correct HTTP status via ``exc.http_status``, forwarding the
    reason ``code``. Any other ``Exception`` is logged and returns a generic 500.

    Usage::

        @irrigation_api.post("/irrigation/runs/<run_id>/complete")
        @safe_route("Failed to complete irrigation run")
        def complete_run(run_id):
            ...
    """
    from app.domain.exceptions import AgroSenseError

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return fn(*args, **kwargs)
            except AgroSenseError as exc:
                status = exc.http_status
                if status >= 500:
                    return safe_error(exc, status, context=error_message, code=exc.code)
                return error_response(
                    str(exc) or error_message,
                    status,
                    code=exc.code,
                    details=exc.detail or None,
                )
            except Exception as exc:
                return safe_error(exc, error_status, context=error_message)

        return wrapper

    return decorator
