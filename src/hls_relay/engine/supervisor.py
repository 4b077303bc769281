"""Admission control and the public facade over supervised sessions."""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional
from urllib.parse import urljoin

from ..utils import coerce_float, coerce_int, ensure_trailing_slash, to_string_list
from .command import EngineCommand
from .errors import EngineSpawnFailure, FatalStreamError, ReadinessTimeout, RelayError
from .lifecycle import ProcessLifecycleManager
from .metrics import MetricsCollector
from .readiness import ReadinessDetector, count_chunk_files, inspect_manifest
from .registry import SessionRegistry
from .session import ClientInfo, Session, SessionState
from .status import StatusBroadcaster
from .stop_strategy import StopStrategy
from .sweeper import ReconciliationSweeper
from .validation import DEFAULT_ALLOWED_SCHEMES, normalize_session_id, validate_source_locator

LOGGER = logging.getLogger(__name__)


class StartOutcome(str, enum.Enum):
    STARTED = "started"
    ALREADY_ACTIVE = "already_active"


@dataclass(frozen=True)
class StartResult:
    """Successful admission of a start request."""

    outcome: StartOutcome
    status: str
    descriptor: Dict[str, Any] = field(default_factory=dict)

    @property
    def session_id(self) -> Optional[str]:
        return self.descriptor.get("stream_id")

    def to_payload(self) -> Dict[str, Any]:
        if self.outcome is StartOutcome.ALREADY_ACTIVE:
            message = "Stream already active"
        elif self.status == "ready":
            message = "Stream conversion started successfully"
        else:
            message = "Stream starting; manifest not ready yet"
        payload = {"success": True, "message": message, "status": self.status}
        payload.update(self.descriptor)
        return payload


@dataclass(frozen=True)
class StopResult:
    """Result of a stop request; ``stopped`` is ``False`` when nothing was running."""

    stopped: bool
    session_id: str
    metrics: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": True,
            "stream_id": self.session_id,
            "stopped": self.stopped,
        }
        if self.stopped:
            payload["message"] = "Stream stopped successfully"
            payload["stopped_at"] = time.time()
            payload["metrics"] = self.metrics
        else:
            payload["message"] = "Stream not found or already stopped"
        return payload


class Supervisor:
    """Admit, inspect and reclaim HLS relay sessions."""

    def __init__(
        self,
        *,
        output_root: Path,
        command: EngineCommand,
        max_streams: int = 20,
        public_base_url: Optional[str] = None,
        allowed_schemes: Optional[Iterable[str]] = None,
        readiness: Optional[ReadinessDetector] = None,
        collector: Optional[MetricsCollector] = None,
        stop_strategy: Optional[StopStrategy] = None,
        session_timeout: float = 600.0,
        cleanup_grace: float = 5.0,
        sweep_interval: float = 30.0,
        max_errors: int = 20,
        max_uptime: float = 86400.0,
        orphan_age: float = 600.0,
        status_broadcaster: Optional[StatusBroadcaster] = None,
        status_interval: float = 5.0,
        registry: Optional[SessionRegistry] = None,
    ) -> None:
        self._output_root = Path(output_root).expanduser()
        self._command = command
        self._max_streams = max(1, int(max_streams))
        self._public_base_url = ensure_trailing_slash(public_base_url)
        schemes = to_string_list(allowed_schemes) if allowed_schemes is not None else []
        self._allowed_schemes = frozenset(schemes) if schemes else DEFAULT_ALLOWED_SCHEMES
        self._readiness = readiness or ReadinessDetector()
        self._status_broadcaster = status_broadcaster
        self._status_interval = status_interval
        self._registry = registry or SessionRegistry()
        self._lifecycle = ProcessLifecycleManager(
            self._registry,
            command=command,
            collector=collector,
            stop_strategy=stop_strategy,
            session_timeout=session_timeout,
            cleanup_grace=cleanup_grace,
            on_change=self._broadcast_status,
        )
        self._sweeper = ReconciliationSweeper(
            self._registry,
            self._lifecycle,
            output_root=self._output_root,
            interval=sweep_interval,
            idle_timeout=session_timeout,
            max_errors=max_errors,
            max_uptime=max_uptime,
            orphan_age=orphan_age,
        )
        self._created_at = time.time()
        self._closed = False
        self._output_root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        status_broadcaster: Optional[StatusBroadcaster] = None,
    ) -> "Supervisor":
        """Build a supervisor from a flat ``HLS_RELAY_*`` mapping."""

        stop_grace = coerce_float(config.get("HLS_RELAY_STOP_GRACE_SECONDS"), 5.0)
        return cls(
            output_root=Path(str(config.get("HLS_RELAY_OUTPUT_DIR"))),
            command=EngineCommand.from_config(config),
            max_streams=coerce_int(config.get("HLS_RELAY_MAX_STREAMS"), 20),
            public_base_url=config.get("HLS_RELAY_PUBLIC_BASE_URL"),
            allowed_schemes=config.get("HLS_RELAY_ALLOWED_SCHEMES"),
            readiness=ReadinessDetector(
                poll_interval=coerce_float(config.get("HLS_RELAY_READY_POLL_SECONDS"), 1.5),
                timeout=coerce_float(config.get("HLS_RELAY_READY_TIMEOUT_SECONDS"), 30.0),
            ),
            collector=MetricsCollector(
                fatal_error_threshold=coerce_int(config.get("HLS_RELAY_FATAL_ERROR_THRESHOLD"), 10),
            ),
            stop_strategy=StopStrategy(grace_timeout=stop_grace),
            session_timeout=coerce_float(config.get("HLS_RELAY_STREAM_TIMEOUT_SECONDS"), 600.0),
            cleanup_grace=coerce_float(config.get("HLS_RELAY_CLEANUP_GRACE_SECONDS"), 5.0),
            sweep_interval=coerce_float(config.get("HLS_RELAY_CLEANUP_INTERVAL_SECONDS"), 30.0),
            max_errors=coerce_int(config.get("HLS_RELAY_MAX_ERRORS"), 20),
            max_uptime=coerce_float(config.get("HLS_RELAY_MAX_UPTIME_SECONDS"), 86400.0),
            orphan_age=coerce_float(config.get("HLS_RELAY_ORPHAN_AGE_SECONDS"), 600.0),
            status_broadcaster=status_broadcaster,
            status_interval=coerce_float(config.get("HLS_RELAY_STATUS_HEARTBEAT_SECONDS"), 5.0),
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def lifecycle(self) -> ProcessLifecycleManager:
        return self._lifecycle

    @property
    def sweeper(self) -> ReconciliationSweeper:
        return self._sweeper

    @property
    def output_root(self) -> Path:
        return self._output_root

    @property
    def max_streams(self) -> int:
        return self._max_streams

    def manifest_url(self, session_id: str) -> Optional[str]:
        if not self._public_base_url:
            return None
        return urljoin(self._public_base_url, f"{session_id}/{self._command.manifest_name}")

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------
    def start_background(self, *, sweeper: bool = True) -> None:
        """Start the reconciliation sweeper and the status heartbeat."""

        if sweeper:
            self._sweeper.start()
        if self._status_broadcaster is not None:
            self._status_broadcaster.start_heartbeat(self._status_interval, self.list_active)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def start_session(
        self,
        source_locator: Any,
        session_id: Any,
        client: Optional[ClientInfo] = None,
    ) -> StartResult:
        """Admit and start a session, blocking until readiness is determined.

        Raises :class:`InvalidInput`, :class:`CapacityExceeded`,
        :class:`EngineSpawnFailure` or :class:`FatalStreamError`. A readiness
        timeout without a fatal signal is not an error: the session is kept
        and reported with status ``starting``.
        """

        source = validate_source_locator(source_locator, self._allowed_schemes)
        safe_id = normalize_session_id(session_id)
        session = Session(
            session_id=safe_id,
            source_locator=source,
            output_dir=self._output_root / safe_id,
            manifest_name=self._command.manifest_name,
            manifest_url=self.manifest_url(safe_id),
            client=client,
        )

        existing, stale = self._registry.reserve(session, max_live=self._max_streams)
        if existing is not None:
            LOGGER.info("Stream %s already active", safe_id)
            return StartResult(
                outcome=StartOutcome.ALREADY_ACTIVE,
                status="already_active",
                descriptor=existing.descriptor(),
            )
        if stale is not None:
            LOGGER.info("Replacing previous session for stream %s", safe_id)
            if not self._lifecycle.purge_stale(stale):
                error = EngineSpawnFailure(
                    f"Previous engine for stream {safe_id} is still running",
                    session_id=safe_id,
                )
                self._lifecycle.reclaim(session, error.reason)
                raise error

        try:
            self._lifecycle.prepare_output(session)
        except OSError as exc:
            self._lifecycle.reclaim(session, "output directory unavailable")
            raise EngineSpawnFailure(
                f"Unable to create output directory: {exc}",
                session_id=safe_id,
            ) from exc

        try:
            self._lifecycle.spawn(session)
        except EngineSpawnFailure as exc:
            LOGGER.error("Failed to start stream %s: %s", safe_id, exc.detail)
            self._lifecycle.reclaim(session, exc.reason)
            raise
        self._broadcast_status()

        LOGGER.info("Waiting for HLS manifest for stream %s...", safe_id)
        try:
            info = self._readiness.wait_ready(session.manifest_path, session.signals)
        except ReadinessTimeout as exc:
            if session.signals.fatal.is_set():
                fatal = FatalStreamError(session.signals.fatal_reason or exc.detail)
                self._abort_start(session, fatal)
                raise fatal from exc
            LOGGER.warning("Manifest not ready yet for %s: %s", safe_id, exc.detail)
            return StartResult(
                outcome=StartOutcome.STARTED,
                status="starting",
                descriptor=session.descriptor(),
            )
        except (FatalStreamError, EngineSpawnFailure) as exc:
            self._abort_start(session, exc)
            raise

        session.mark_active()
        LOGGER.info("HLS manifest ready for stream %s (%d segment(s))", safe_id, info.segment_count)
        self._broadcast_status()
        return StartResult(
            outcome=StartOutcome.STARTED,
            status="ready",
            descriptor=session.descriptor(),
        )

    def stop_session(self, session_id: Any) -> StopResult:
        """Stop a session. Stopping an unknown or already stopped id is not an error."""

        safe_id = normalize_session_id(session_id)
        session = self._registry.get(safe_id)
        if session is None:
            return StopResult(stopped=False, session_id=safe_id)
        summary = self._lifecycle.reclaim(session, "stopped by request")
        if summary is None:
            return StopResult(stopped=False, session_id=safe_id)
        LOGGER.info("Stream %s stopped manually", safe_id)
        return StopResult(stopped=True, session_id=safe_id, metrics=summary)

    def get_status(self, session_id: Any) -> Dict[str, Any]:
        """Describe ``session_id`` and refresh its last-activity timestamp."""

        safe_id = normalize_session_id(session_id)
        session = self._registry.touch(safe_id)
        if session is None:
            return {"stream_id": safe_id, "active": False}
        if session.state is SessionState.TERMINATING:
            return {"stream_id": safe_id, "active": False, "state": session.state.value}
        info = inspect_manifest(session.manifest_path)
        process = session.process
        return {
            "stream_id": safe_id,
            "active": True,
            "state": session.state.value,
            "hls_url": session.manifest_url,
            "source_url": session.source_locator,
            "manifest_exists": info.exists,
            "segment_count_from_manifest": info.segment_count,
            "segment_count_from_disk": count_chunk_files(session.output_dir),
            "start_time": session.started_at,
            "uptime": round(session.uptime(), 3),
            "last_activity": session.last_activity_at,
            "process_running": session.process_running,
            "pid": process.pid if process is not None else None,
            "client": session.client.to_dict(),
            "metrics": session.metrics.snapshot(),
        }

    def list_active(self) -> Dict[str, Any]:
        now = time.time()
        streams = []
        stopping = 0
        for session in self._registry.sessions():
            if session.state is SessionState.TERMINATING:
                stopping += 1
                continue
            streams.append(session.descriptor(now=now))
        return {
            "streams": streams,
            "count": len(streams),
            "stopping": stopping,
            "max_streams": self._max_streams,
            "utilization_percent": self._utilization(len(streams)),
        }

    def health_check(self) -> Dict[str, Any]:
        active = self._registry.live_count()
        total_segments = sum(metrics.segment_count for metrics in self._registry.all_metrics())
        engine_available = self._command.probe()
        return {
            "status": "healthy" if engine_available else "degraded",
            "engine_available": engine_available,
            "active_count": active,
            "capacity": self._max_streams,
            "utilization_percent": self._utilization(active),
            "total_segments": total_segments,
            "uptime": round(time.time() - self._created_at, 3),
            "sweeper_running": self._sweeper.running(),
        }

    def shutdown(self) -> None:
        """Terminate every session and remove its directory. Safe to call twice."""

        if self._closed:
            return
        self._closed = True
        LOGGER.info("Shutting down relay; stopping %d stream(s)", self._registry.count())
        self._sweeper.stop()
        self._lifecycle.shutdown()
        broadcaster = self._status_broadcaster
        if broadcaster is not None:
            broadcaster.clear()
            broadcaster.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _abort_start(self, session: Session, error: RelayError) -> None:
        if error.session_id is None:
            error.session_id = session.session_id
        LOGGER.error("Failed to start stream %s: %s", session.session_id, error.detail)
        self._lifecycle.reclaim(session, error.reason, wait=True)

    def _utilization(self, count: int) -> float:
        return round(count / self._max_streams * 100.0, 1)

    def _broadcast_status(self) -> None:
        broadcaster = self._status_broadcaster
        if broadcaster is None or not broadcaster.enabled:
            return
        broadcaster.publish(self.list_active())


__all__ = [
    "StartOutcome",
    "StartResult",
    "StopResult",
    "Supervisor",
]
