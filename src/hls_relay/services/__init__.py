"""Service helpers for the relay runtime."""
from __future__ import annotations

from .stream_session import (
    StreamSessionService,
    client_info_from_request,
    get_session_service,
    init_stream_services,
)

__all__ = [
    "StreamSessionService",
    "client_info_from_request",
    "get_session_service",
    "init_stream_services",
]
