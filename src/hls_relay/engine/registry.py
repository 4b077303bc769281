"""Authoritative in-memory map of supervised sessions."""
from __future__ import annotations

from threading import Lock
from typing import Dict, List, Optional, Tuple

from .errors import CapacityExceeded
from .metrics import SessionMetrics
from .session import Session


class SessionRegistry:
    """Track live sessions and their metrics.

    Sessions and metrics are keyed independently so a metrics entry can outlive
    its session until deferred cleanup purges it. The lock only ever guards
    dictionary operations.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._sessions: Dict[str, Session] = {}
        self._metrics: Dict[str, SessionMetrics] = {}

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------
    def reserve(
        self,
        session: Session,
        *,
        max_live: int,
    ) -> Tuple[Optional[Session], Optional[Session]]:
        """Atomically admit ``session`` unless a live duplicate or the cap blocks it.

        Returns ``(existing_live, stale)``. When ``existing_live`` is set nothing
        was stored. Otherwise ``session`` now owns the id and ``stale`` holds the
        dead or terminating entry it replaced, if any. A terminating entry whose
        engine is still running counts against ``max_live`` until it exits, but
        the slot passes to ``session`` when it takes over the same id. Raises
        :class:`CapacityExceeded` when ``max_live`` slots are already held; the
        duplicate check wins.
        """

        with self._lock:
            existing = self._sessions.get(session.session_id)
            if existing is not None and existing.is_live:
                return existing, None
            live = self._live_count_locked(exclude=existing)
            if live >= max_live:
                raise CapacityExceeded(live, max_live)
            self._sessions[session.session_id] = session
            self._metrics[session.session_id] = session.metrics
            return None, existing

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def touch(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is not None:
            session.touch()
        return session

    def sessions(self) -> List[Session]:
        with self._lock:
            return list(self._sessions.values())

    def ids(self) -> set[str]:
        with self._lock:
            return set(self._sessions)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def live_count(self) -> int:
        with self._lock:
            return self._live_count_locked()

    def metrics_for(self, session_id: str) -> Optional[SessionMetrics]:
        with self._lock:
            return self._metrics.get(session_id)

    def all_metrics(self) -> List[SessionMetrics]:
        with self._lock:
            return list(self._metrics.values())

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------
    def remove(self, session_id: str, session: Optional[Session] = None) -> bool:
        """Drop the entry for ``session_id``.

        When ``session`` is given the entry is only removed if it is that exact
        object, so a late callback from a dead session never evicts its
        replacement. Removing a missing entry is a no-op.
        """

        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return False
            if session is not None and current is not session:
                return False
            del self._sessions[session_id]
            return True

    def discard_metrics(self, session_id: str, metrics: Optional[SessionMetrics] = None) -> bool:
        with self._lock:
            current = self._metrics.get(session_id)
            if current is None:
                return False
            if metrics is not None and current is not metrics:
                return False
            del self._metrics[session_id]
            return True

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._metrics.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _live_count_locked(self, exclude: Optional[Session] = None) -> int:
        return sum(
            1
            for candidate in self._sessions.values()
            if candidate is not exclude and candidate.holds_slot
        )


__all__ = ["SessionRegistry"]
