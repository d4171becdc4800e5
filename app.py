"""Flask application entry point for the service ticketing API."""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import uuid4

import structlog
from flask import Flask, g, jsonify, request
from pydantic import ValidationError
from sqlalchemy import text
from structlog.contextvars import bind_contextvars, clear_contextvars
from werkzeug.exceptions import HTTPException

from service_ticketing.api import register_blueprints
from service_ticketing.api.responses import error
from service_ticketing.config import get_settings
from service_ticketing.db import init_db, session_scope
from service_ticketing.errors import ErrorCodes, TicketingError
from service_ticketing.logging_config import configure_logging, resolve_level
from service_ticketing.models import utcnow

TRACE_HEADER = "X-Trace-Id"

_LOGGING_CONFIGURED = False

_HTTP_ERROR_CODES = {
    404: ErrorCodes.NOT_FOUND,
    405: "METHOD_NOT_ALLOWED",
}


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def _validation_details(exc: ValidationError) -> dict[str, object]:
    fields = []
    for item in exc.errors():
        fields.append(
            {
                "field": ".".join(str(part) for part in item.get("loc", ())) or None,
                "message": item.get("msg", "Invalid value"),
            }
        )
    return {"fields": fields}


def _register_request_hooks(flask_app: Flask) -> None:
    @flask_app.before_request
    def bind_trace_id():
        trace_id = request.headers.get(TRACE_HEADER) or str(uuid4())
        g.trace_id = trace_id
        clear_contextvars()
        bind_contextvars(trace_id=trace_id, path=request.path, method=request.method)

    @flask_app.after_request
    def attach_trace_id(response):
        trace_id = g.get("trace_id")
        if trace_id:
            response.headers[TRACE_HEADER] = trace_id
        return response

    @flask_app.teardown_request
    def unbind_trace_id(_exc):
        clear_contextvars()


def _register_error_handlers(flask_app: Flask) -> None:
    """Register JSON error handlers that attach a trace identifier."""

    @flask_app.errorhandler(TicketingError)
    def handle_domain_error(exc: TicketingError):
        structlog.get_logger().warning(
            "request_failed",
            error_code=exc.code,
            status=exc.status_code,
            error=exc.message,
        )
        return error(
            exc.message,
            status=exc.status_code,
            code=exc.code,
            details=exc.details,
            trace_id=g.get("trace_id"),
        )

    @flask_app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        details = _validation_details(exc)
        structlog.get_logger().info("request_invalid", fields=details["fields"])
        return error(
            "Validation failed",
            status=400,
            code=ErrorCodes.VALIDATION_ERROR,
            details=details,
            trace_id=g.get("trace_id"),
        )

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):  # type: ignore[override]
        if isinstance(exc, HTTPException):
            return error(
                exc.description or exc.name,
                status=exc.code or 500,
                code=_HTTP_ERROR_CODES.get(exc.code, "HTTP_ERROR"),
                trace_id=g.get("trace_id"),
            )

        trace_id = g.get("trace_id") or str(uuid4())
        structlog.get_logger().exception("unhandled_error", trace_id=trace_id, error=str(exc))
        response = jsonify(
            {
                "success": False,
                "error": {"code": "INTERNAL_SERVER_ERROR", "message": "Internal server error"},
                "trace_id": trace_id,
                "timestamp": utcnow().isoformat(),
            }
        )
        response.status_code = 500
        return response


def create_app() -> Flask:
    """Create and configure the Flask application."""

    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        configure_logging()
        _LOGGING_CONFIGURED = True

    settings = get_settings()
    logging.getLogger().setLevel(resolve_level(settings.log_level))

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.json.sort_keys = False

    if settings.auto_create_schema:
        init_db()

    _register_request_hooks(flask_app)
    _register_error_handlers(flask_app)
    register_blueprints(flask_app)

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")

        try:
            get_settings()
            health["config"] = "valid"
        except Exception as exc:
            health["config"] = "invalid"
            health["config_error"] = str(exc)
            health["ok"] = False

        try:
            with session_scope() as session:
                session.execute(text("SELECT 1"))
            health["db"] = "up"
        except Exception as exc:
            health["db"] = "down"
            health["db_error"] = str(exc)
            health["ok"] = False

        status = 200 if health["ok"] else 503
        return jsonify(health), status

    structlog.get_logger().info("app_created", version=flask_app.config["APP_VERSION"])
    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=3000, debug=True)
