"""Helpers that bind the session supervisor to the Flask application."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from flask import Flask, Request

from ..engine import ClientInfo, StartResult, StopResult, Supervisor
from ..logging_config import current_log_file


def client_info_from_request(request: Request) -> ClientInfo:
    return ClientInfo(
        address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


class StreamSessionService:
    """Application-facing wrapper around the :class:`Supervisor`."""

    def __init__(self, app: Flask) -> None:
        supervisor = app.extensions.get("hls_relay_supervisor")
        if not isinstance(supervisor, Supervisor):
            raise RuntimeError("Relay supervisor not initialised on Flask app.")
        self._app = app
        self._supervisor = supervisor

    @property
    def supervisor(self) -> Supervisor:
        return self._supervisor

    def start(self, payload: Mapping[str, Any], request: Optional[Request] = None) -> StartResult:
        client = client_info_from_request(request) if request is not None else None
        return self._supervisor.start_session(
            payload.get("source_url") or payload.get("flvUrl"),
            payload.get("stream_id") or payload.get("streamId"),
            client=client,
        )

    def stop(self, payload: Mapping[str, Any]) -> StopResult:
        return self._supervisor.stop_session(payload.get("stream_id") or payload.get("streamId"))

    def status(self, stream_id: str) -> Dict[str, Any]:
        return self._supervisor.get_status(stream_id)

    def active(self) -> Dict[str, Any]:
        return self._supervisor.list_active()

    def health(self) -> Dict[str, Any]:
        payload = self._supervisor.health_check()
        log_path = current_log_file()
        payload["log_file"] = str(log_path) if log_path else None
        payload["config"] = {
            "max_streams": self._supervisor.max_streams,
            "segment_duration": self._app.config.get("HLS_RELAY_SEGMENT_DURATION"),
            "max_segments": self._app.config.get("HLS_RELAY_MAX_SEGMENTS"),
            "stream_timeout": self._app.config.get("HLS_RELAY_STREAM_TIMEOUT_SECONDS"),
        }
        return payload


def init_stream_services(app: Flask) -> StreamSessionService:
    service = app.extensions.get("hls_relay_session_service")
    if isinstance(service, StreamSessionService):
        return service
    service = StreamSessionService(app)
    app.extensions["hls_relay_session_service"] = service
    return service


def get_session_service(app: Flask) -> StreamSessionService:
    service = app.extensions.get("hls_relay_session_service")
    if isinstance(service, StreamSessionService):
        return service
    return init_stream_services(app)


__all__ = [
    "StreamSessionService",
    "client_info_from_request",
    "get_session_service",
    "init_stream_services",
]
