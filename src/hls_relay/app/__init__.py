"""Relay application factory."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask

from .bootstrap import configure_media_routes, init_logging, load_configuration
from .extensions import (
    configure_cors,
    init_status_broadcaster,
    init_supervisor,
    register_blueprints,
    register_teardown,
)
from ..services import init_stream_services


def create_app(config_overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Create and configure the relay Flask application."""

    init_logging()
    app = Flask(__name__)
    load_configuration(app, config_overrides)

    status_broadcaster = init_status_broadcaster(app)
    supervisor = init_supervisor(app, status_broadcaster=status_broadcaster)
    init_stream_services(app)

    register_blueprints(app)
    configure_media_routes(app)

    cors_origin = app.config.get("HLS_RELAY_CORS_ORIGIN", "*")
    configure_cors(app, cors_origin)
    register_teardown(app, supervisor)

    return app


__all__ = ["create_app"]
