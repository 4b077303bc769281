"""Periodic reconciliation of registry state against reality."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .errors import CleanupFailure
from .heartbeat import HeartbeatLoop
from .lifecycle import ProcessLifecycleManager
from .registry import SessionRegistry
from .session import Session, SessionState

LOGGER = logging.getLogger(__name__)

DEAD_PROCESS = "dead process"
IDLE_TIMEOUT = "idle timeout"
TOO_MANY_ERRORS = "too many errors"
MAX_UPTIME = "max uptime"


@dataclass
class SweepReport:
    """What a single sweep reclaimed and deleted."""

    reclaimed: List[Tuple[str, str]] = field(default_factory=list)
    orphans_removed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def reclaimed_ids(self) -> List[str]:
        return [session_id for session_id, _reason in self.reclaimed]


class ReconciliationSweeper:
    """Reclaim dead, idle, error-prone and over-age sessions and orphaned directories."""

    def __init__(
        self,
        registry: SessionRegistry,
        lifecycle: ProcessLifecycleManager,
        *,
        output_root: Path,
        interval: float = 30.0,
        idle_timeout: float = 600.0,
        max_errors: int = 20,
        max_uptime: float = 86400.0,
        orphan_age: float = 600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._lifecycle = lifecycle
        self._output_root = Path(output_root)
        self._idle_timeout = float(idle_timeout)
        self._max_errors = int(max_errors)
        self._max_uptime = float(max_uptime)
        self._orphan_age = float(orphan_age)
        self._clock = clock
        self._loop = HeartbeatLoop(interval, self._tick, name="hls-relay-sweeper")

    def decide(self, session: Session, now: Optional[float] = None) -> Optional[str]:
        """Return the first matching reclaim reason for ``session``, if any."""

        current = self._clock() if now is None else now
        if session.state is SessionState.TERMINATING:
            return None
        if session.process is not None and not session.process.running:
            return DEAD_PROCESS
        if session.idle_time(current) > self._idle_timeout:
            return IDLE_TIMEOUT
        if session.metrics.error_count > self._max_errors:
            return TOO_MANY_ERRORS
        if session.uptime(current) > self._max_uptime:
            return MAX_UPTIME
        return None

    def run_once(self) -> SweepReport:
        now = self._clock()
        report = SweepReport()
        for session in self._registry.sessions():
            reason = self.decide(session, now)
            if reason is None:
                continue
            LOGGER.info("Cleaning up stream %s (%s)", session.session_id, reason)
            if self._lifecycle.reclaim(session, reason) is not None:
                report.reclaimed.append((session.session_id, reason))
        self._remove_orphans(now, report)
        return report

    def start(self) -> None:
        self._loop.start()

    def stop(self) -> None:
        self._loop.stop()

    def running(self) -> bool:
        return self._loop.running()

    def _tick(self) -> None:
        report = self.run_once()
        if report.reclaimed or report.orphans_removed:
            LOGGER.info(
                "Sweep reclaimed %d session(s); orphan directories removed: %d",
                len(report.reclaimed),
                len(report.orphans_removed),
            )

    def _remove_orphans(self, now: float, report: SweepReport) -> None:
        try:
            entries = list(self._output_root.iterdir())
        except FileNotFoundError:
            return
        except OSError as exc:
            LOGGER.error("Error scanning output root %s: %s", self._output_root, exc)
            report.errors.append(str(exc))
            return

        known = self._registry.ids() | self._lifecycle.pending_cleanup_ids()
        for entry in entries:
            if entry.name in known:
                continue
            try:
                if not entry.is_dir():
                    continue
                age = now - entry.stat().st_mtime
            except OSError as exc:
                LOGGER.warning("Unable to inspect %s: %s", entry, exc)
                continue
            if age <= self._orphan_age:
                continue
            LOGGER.info("Cleaning up orphaned directory: %s", entry.name)
            try:
                self._lifecycle.remove_directory(entry)
            except CleanupFailure as exc:
                LOGGER.error("%s", exc.detail)
                report.errors.append(exc.detail)
                continue
            report.orphans_removed.append(entry.name)


__all__ = [
    "DEAD_PROCESS",
    "IDLE_TIMEOUT",
    "MAX_UPTIME",
    "ReconciliationSweeper",
    "SweepReport",
    "TOO_MANY_ERRORS",
]
