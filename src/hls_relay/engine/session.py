"""Data structures that describe a supervised transcoding session."""
from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from .metrics import SessionMetrics

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .lifecycle import EngineProcess


class SessionState(str, enum.Enum):
    STARTING = "starting"
    ACTIVE = "active"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class ClientInfo:
    """Requester metadata kept for observability only."""

    address: Optional[str] = None
    user_agent: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"ip": self.address, "user_agent": self.user_agent or "Unknown"}


class StartupSignals:
    """Signals raised by output classification while a session starts up."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self.soft_ready = threading.Event()
        self.fatal = threading.Event()
        self.exited = threading.Event()
        self.fatal_reason: Optional[str] = None
        self.returncode: Optional[int] = None

    def mark_soft_ready(self) -> bool:
        """Set the soft-ready flag, returning ``True`` only the first time."""

        with self._lock:
            if self.soft_ready.is_set():
                return False
            self.soft_ready.set()
            return True

    def mark_fatal(self, reason: str) -> None:
        with self._lock:
            if self.fatal_reason is None:
                self.fatal_reason = reason
            self.fatal.set()
        self._wake.set()

    def mark_exited(self, returncode: Optional[int]) -> None:
        with self._lock:
            self.returncode = returncode
            self.exited.set()
        self._wake.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on a fatal signal or exit."""

        return self._wake.wait(max(0.0, timeout))


class Session:
    """One external engine process bound to one source locator."""

    def __init__(
        self,
        *,
        session_id: str,
        source_locator: str,
        output_dir: Path,
        manifest_name: str,
        manifest_url: Optional[str] = None,
        client: Optional[ClientInfo] = None,
        now: Optional[float] = None,
    ) -> None:
        started = now if now is not None else time.time()
        self._lock = threading.Lock()
        self.session_id = session_id
        self.source_locator = source_locator
        self.output_dir = output_dir
        self.manifest_path = output_dir / manifest_name
        self.manifest_url = manifest_url
        self.client = client or ClientInfo()
        self.started_at = started
        self.last_activity_at = started
        self.metrics = SessionMetrics(started_at=started)
        self.signals = StartupSignals()
        self.process: Optional["EngineProcess"] = None
        self.timeout_timer: Optional[threading.Timer] = None
        self._state = SessionState.STARTING

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    def mark_active(self) -> None:
        with self._lock:
            if self._state is SessionState.STARTING:
                self._state = SessionState.ACTIVE

    def claim_termination(self) -> bool:
        """Atomically move to ``terminating``; only the first caller wins."""

        with self._lock:
            if self._state in (SessionState.TERMINATING, SessionState.TERMINATED):
                return False
            self._state = SessionState.TERMINATING
            return True

    def mark_terminated(self) -> bool:
        """Move from ``terminating`` to ``terminated``; only the first caller wins."""

        with self._lock:
            if self._state is not SessionState.TERMINATING:
                return False
            self._state = SessionState.TERMINATED
            return True

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def process_running(self) -> bool:
        process = self.process
        return process is not None and process.running

    @property
    def is_live(self) -> bool:
        """Whether the session still owns (or is about to own) a running process."""

        with self._lock:
            state = self._state
        if state not in (SessionState.STARTING, SessionState.ACTIVE):
            return False
        if self.process is None:
            return state is SessionState.STARTING
        return self.process.running

    @property
    def holds_slot(self) -> bool:
        """Whether the session counts against capacity.

        A terminating session keeps its slot until its engine has exited.
        """

        if self.is_live:
            return True
        return self.state is SessionState.TERMINATING and self.process_running

    def touch(self, now: Optional[float] = None) -> None:
        self.last_activity_at = now if now is not None else time.time()

    def uptime(self, now: Optional[float] = None) -> float:
        current = now if now is not None else time.time()
        return max(0.0, current - self.started_at)

    def idle_time(self, now: Optional[float] = None) -> float:
        current = now if now is not None else time.time()
        return max(0.0, current - self.last_activity_at)

    def cancel_timeout(self) -> None:
        timer = self.timeout_timer
        self.timeout_timer = None
        if timer is not None:
            timer.cancel()

    def descriptor(self, *, now: Optional[float] = None) -> Dict[str, Any]:
        """Render the public descriptor used by API responses."""

        current = now if now is not None else time.time()
        process = self.process
        return {
            "stream_id": self.session_id,
            "hls_url": self.manifest_url,
            "source_url": self.source_locator,
            "state": self.state.value,
            "start_time": self.started_at,
            "uptime": round(self.uptime(current), 3),
            "last_activity": self.last_activity_at,
            "process_running": self.process_running,
            "pid": process.pid if process is not None else None,
            "client_info": self.client.to_dict(),
            "metrics": self.metrics.snapshot(),
        }


__all__ = ["ClientInfo", "Session", "SessionState", "StartupSignals"]
