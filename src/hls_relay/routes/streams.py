"""HTTP routes that drive the stream session supervisor."""
from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request

from ..engine import CapacityExceeded, InvalidInput, RelayError
from ..services.stream_session import StreamSessionService, get_session_service

api_bp = Blueprint("hls_relay_api", __name__, url_prefix="/api")

_ERROR_MESSAGES = {
    InvalidInput: "Invalid request",
    CapacityExceeded: "Maximum concurrent streams limit reached",
}


def _service() -> StreamSessionService:
    return get_session_service(current_app)


def _status_for(error: RelayError) -> HTTPStatus:
    if isinstance(error, InvalidInput):
        return HTTPStatus.BAD_REQUEST
    if isinstance(error, CapacityExceeded):
        return HTTPStatus.TOO_MANY_REQUESTS
    return HTTPStatus.INTERNAL_SERVER_ERROR


@api_bp.errorhandler(RelayError)
def relay_error_handler(error: RelayError):
    status = _status_for(error)
    payload = error.to_payload()
    payload["success"] = False
    payload["message"] = _ERROR_MESSAGES.get(type(error), "Failed to start stream")
    if status is HTTPStatus.INTERNAL_SERVER_ERROR:
        current_app.logger.error("Request failed: %s", error.detail)
    return jsonify(payload), status


@api_bp.route("/stream/start", methods=["POST"])
def start_stream_endpoint():
    payload = request.get_json(silent=True) or {}
    result = _service().start(payload, request)
    return jsonify(result.to_payload()), HTTPStatus.OK


@api_bp.route("/stream/stop", methods=["POST"])
def stop_stream_endpoint():
    payload = request.get_json(silent=True) or {}
    result = _service().stop(payload)
    return jsonify(result.to_payload()), HTTPStatus.OK


@api_bp.route("/stream/status/<string:stream_id>", methods=["GET"])
def stream_status_endpoint(stream_id: str):
    payload = {"success": True}
    payload.update(_service().status(stream_id))
    return jsonify(payload), HTTPStatus.OK


@api_bp.route("/streams/active", methods=["GET"])
def active_streams_endpoint():
    payload = {"success": True}
    payload.update(_service().active())
    return jsonify(payload), HTTPStatus.OK


@api_bp.route("/health", methods=["GET"])
def health_endpoint():
    payload = _service().health()
    payload["service"] = "hls-relay"
    return jsonify(payload), HTTPStatus.OK


__all__ = ["api_bp"]
