"""Error taxonomy raised by the stream session supervisor."""
from __future__ import annotations

from typing import Any, Dict, Optional


class RelayError(RuntimeError):
    """Base error for the relay package.

    Every error carries a stable machine-checkable ``reason`` and a human
    readable ``detail`` derived from the most recent classified engine output.
    """

    reason = "relay_error"

    def __init__(self, detail: str, *, session_id: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.session_id = session_id

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"reason": self.reason, "error": self.detail}
        if self.session_id is not None:
            payload["stream_id"] = self.session_id
        return payload


class InvalidInput(RelayError):
    """Raised when a source locator or session identifier is rejected."""

    reason = "invalid_input"


class CapacityExceeded(RelayError):
    """Raised when the global concurrency cap has been reached."""

    reason = "capacity_exceeded"

    def __init__(self, current: int, maximum: int) -> None:
        super().__init__(f"Maximum concurrent streams limit reached ({maximum})")
        self.current = current
        self.maximum = maximum

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["active_streams"] = self.current
        payload["max_streams"] = self.maximum
        return payload


class EngineSpawnFailure(RelayError):
    """Raised when the engine process cannot start or dies during startup."""

    reason = "engine_start_failure"


class FatalStreamError(RelayError):
    """Raised when engine output reported a fatal condition before readiness."""

    reason = "fatal_stream_error"


class ReadinessTimeout(RelayError):
    """Raised when the manifest did not become ready within the bounded wait."""

    reason = "readiness_timeout"


class CleanupFailure(RelayError):
    """Raised internally when artifacts cannot be removed; always logged, never surfaced."""

    reason = "cleanup_failure"


__all__ = [
    "CapacityExceeded",
    "CleanupFailure",
    "EngineSpawnFailure",
    "FatalStreamError",
    "InvalidInput",
    "ReadinessTimeout",
    "RelayError",
]
