"""Per-session counters derived from classified engine output."""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from .classifier import EventKind, OutputEvent

LOGGER = logging.getLogger(__name__)

DEFAULT_FATAL_ERROR_THRESHOLD = 10


class SessionMetrics:
    """Mutable counters for one session.

    Both engine output readers update the same instance, so every mutation
    happens under ``_lock``.
    """

    def __init__(self, *, started_at: Optional[float] = None) -> None:
        self._lock = threading.Lock()
        self.started_at = started_at if started_at is not None else time.time()
        self.reconnect_count = 0
        self.error_count = 0
        self.segment_count = 0
        self.last_error: Optional[str] = None
        self.last_segment_time: Optional[float] = None

    def record_reconnect(self) -> int:
        with self._lock:
            self.reconnect_count += 1
            return self.reconnect_count

    def record_error(self, text: str) -> int:
        with self._lock:
            self.error_count += 1
            self.last_error = text
            return self.error_count

    def record_segment(self, *, now: Optional[float] = None) -> int:
        with self._lock:
            self.segment_count += 1
            self.last_segment_time = now if now is not None else time.time()
            return self.segment_count

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "reconnect_count": self.reconnect_count,
                "error_count": self.error_count,
                "segment_count": self.segment_count,
                "last_error": self.last_error,
                "last_segment_time": self.last_segment_time,
            }

    def final_summary(self, *, now: Optional[float] = None) -> Dict[str, Any]:
        current = now if now is not None else time.time()
        with self._lock:
            return {
                "uptime": round(max(0.0, current - self.started_at), 3),
                "reconnects": self.reconnect_count,
                "errors": self.error_count,
                "segments": self.segment_count,
            }


class MetricsCollector:
    """Apply classified output events to :class:`SessionMetrics` instances."""

    def __init__(
        self,
        *,
        fatal_error_threshold: int = DEFAULT_FATAL_ERROR_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fatal_error_threshold = max(0, int(fatal_error_threshold))
        self._clock = clock

    @property
    def fatal_error_threshold(self) -> int:
        return self._fatal_error_threshold

    def apply(self, session_id: str, metrics: SessionMetrics, event: OutputEvent) -> Optional[str]:
        """Record ``event`` and return the fatal error text when it is fatal.

        Explicit fatal markers are fatal on their own. Any error that pushes the
        count past the threshold is promoted to fatal as well, which catches
        slow-drip failures that never match an explicit marker.
        """

        if event.kind is EventKind.RECONNECT:
            count = metrics.record_reconnect()
            LOGGER.info("Reconnect count for %s: %d", session_id, count)
            return None
        if event.kind is EventKind.CHUNK:
            metrics.record_segment(now=self._clock())
            return None
        if event.kind is EventKind.ERROR:
            count = metrics.record_error(event.text)
            if event.fatal:
                return event.text
            if count > self._fatal_error_threshold:
                LOGGER.warning(
                    "Session %s exceeded %d engine errors; treating as fatal",
                    session_id,
                    self._fatal_error_threshold,
                )
                return event.text
        return None


__all__ = ["DEFAULT_FATAL_ERROR_THRESHOLD", "MetricsCollector", "SessionMetrics"]
