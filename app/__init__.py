from __future__ import annotations

import atexit
import contextlib
import logging
import signal
import threading
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from app.config import load_config, setup_logging


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    forecast_service: Any = None,
    handle_signals: bool = True,
) -> Flask:
    """Build the Flask application and its service container.

    Args:
        config_overrides: AppConfig fields to override (keys are case-insensitive)
        forecast_service: Replacement forecast provider (tests pass a stub)
        handle_signals: Install SIGINT/SIGTERM handlers for graceful shutdown
    """
    config = load_config()
    if config_overrides:
        for key, value in config_overrides.items():
            setattr(config, key if key == "DEBUG" else key.lower(), value)

    # Configure logging early so container startup is visible in the terminal and log file.
    setup_logging(debug=config.DEBUG, log_file=config.log_file)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    from app.services.container import ServiceContainer

    container = ServiceContainer.build(config, forecast_service=forecast_service)
    flask_app.config["CONTAINER"] = container

    # ── Graceful shutdown handlers ──────────────────────────────────
    _shutdown_lock = threading.Lock()
    _shutdown_done = False

    def _graceful_shutdown(reason: str = "unknown") -> None:
        nonlocal _shutdown_done
        with _shutdown_lock:
            if _shutdown_done:
                return
            _shutdown_done = True
        logging.info("Graceful shutdown initiated (%s)", reason)
        container.shutdown()

    def _signal_handler(signum: int, _frame: object) -> None:
        sig_name = signal.Signals(signum).name
        logging.info("Received %s, shutting down", sig_name)
        _graceful_shutdown(sig_name)
        raise SystemExit(0)

    atexit.register(_graceful_shutdown, "atexit")
    flask_app.extensions["agrosense_shutdown"] = _graceful_shutdown

    if handle_signals:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(OSError, ValueError):
                signal.signal(sig, _signal_handler)

    # Per-thread SQLite connections are released at the end of each request.
    flask_app.teardown_appcontext(container.database.close_db)

    # Global JSON error handler: domain exceptions carry their own
    # ``http_status``; anything else becomes a generic 500.
    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if not request.path.startswith("/api/"):
            raise exc
        from app.domain.exceptions import AgroSenseError
        from app.utils.http import error_response, safe_error

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, AgroSenseError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__, code=exc.code)
            return error_response(str(exc) or "Request failed", status, code=exc.code)

        return safe_error(exc, 500, context="unhandled")

    # ── API version prefix ──────────────────────────────────────────
    # All API endpoints live under /api/v1/; /api/* is rewritten below.
    from app.blueprints.api.alerts import alerts_api
    from app.blueprints.api.devices import devices_api
    from app.blueprints.api.farms import farms_api
    from app.blueprints.api.health import health_api
    from app.blueprints.api.irrigation import irrigation_bp

    V1 = "/api/v1"
    flask_app.register_blueprint(farms_api, url_prefix=f"{V1}/farms")
    flask_app.register_blueprint(devices_api, url_prefix=f"{V1}/devices")
    flask_app.register_blueprint(irrigation_bp, url_prefix=f"{V1}/irrigation")
    flask_app.register_blueprint(alerts_api, url_prefix=f"{V1}/alerts")
    flask_app.register_blueprint(health_api, url_prefix=f"{V1}/health")

    for bp_name in flask_app.blueprints:
        logging.debug("Registered blueprint: %s", bp_name)

    # ── Backward-compat: rewrite /api/* → /api/v1/* ─────────────
    # WSGI-level rewrite (no HTTP redirect, fully transparent to clients).
    _original_wsgi = flask_app.wsgi_app

    def _unversioned_api_rewrite(environ, start_response):
        path = environ.get("PATH_INFO", "")
        if path.startswith("/api/") and not path.startswith("/api/v1/"):
            environ["PATH_INFO"] = "/api/v1" + path[4:]
        return _original_wsgi(environ, start_response)

    flask_app.wsgi_app = _unversioned_api_rewrite  # type: ignore[assignment]

    logging.getLogger(__name__).info("AgroSense application initialized successfully.")
    return flask_app


__all__ = ["create_app"]
