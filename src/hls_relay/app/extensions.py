"""Extension wiring for the relay Flask application."""
from __future__ import annotations

import atexit
import logging
from typing import Optional

from flask import Flask, Response, request

from ..engine import StatusBroadcaster, Supervisor
from ..routes import api_bp
from ..utils import coerce_int, to_bool

LOGGER = logging.getLogger(__name__)


def init_status_broadcaster(app: Flask) -> Optional[StatusBroadcaster]:
    redis_url = app.config.get("HLS_RELAY_STATUS_REDIS_URL")
    if not redis_url:
        return None
    status_broadcaster = StatusBroadcaster(
        redis_url=redis_url,
        key=app.config.get("HLS_RELAY_STATUS_KEY", "hls_relay:streams"),
        channel=app.config.get("HLS_RELAY_STATUS_CHANNEL"),
        ttl_seconds=coerce_int(app.config.get("HLS_RELAY_STATUS_TTL_SECONDS"), 30),
    )
    app.extensions["hls_relay_status_broadcaster"] = status_broadcaster
    if not status_broadcaster.available:
        LOGGER.warning(
            "Status broadcasting unavailable: %s",
            status_broadcaster.last_error or "unable to reach Redis",
        )
    return status_broadcaster


def init_supervisor(
    app: Flask,
    *,
    status_broadcaster: Optional[StatusBroadcaster] = None,
) -> Supervisor:
    supervisor = Supervisor.from_config(app.config, status_broadcaster=status_broadcaster)
    app.extensions["hls_relay_supervisor"] = supervisor
    LOGGER.info(
        "Relay supervisor ready (output=%s, max_streams=%d)",
        supervisor.output_root,
        supervisor.max_streams,
    )
    if supervisor.lifecycle.command.probe():
        LOGGER.info("Engine binary '%s' is available", supervisor.lifecycle.command.binary)
    else:
        LOGGER.warning("Engine binary '%s' is not available", supervisor.lifecycle.command.binary)
    supervisor.start_background(sweeper=to_bool(app.config.get("HLS_RELAY_SWEEPER_ENABLED", True)))
    return supervisor


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(api_bp)


def register_teardown(app: Flask, supervisor: Supervisor) -> None:
    """Reclaim every session when the interpreter exits."""

    atexit.register(supervisor.shutdown)


def configure_cors(app: Flask, cors_origin: str | None) -> None:
    allowed_default = cors_origin or "*"

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        origin = request.headers.get("Origin")
        allowed_origin = allowed_default
        if allowed_default == "*" and origin:
            allowed_origin = origin
        response.headers["Access-Control-Allow-Origin"] = allowed_origin
        response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type, Range")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET,POST,OPTIONS")
        if allowed_origin != "*":
            response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        if origin:
            response.headers.add("Vary", "Origin")
        return response


__all__ = [
    "configure_cors",
    "init_status_broadcaster",
    "init_supervisor",
    "register_blueprints",
    "register_teardown",
]
