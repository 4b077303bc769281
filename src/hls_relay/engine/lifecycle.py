"""Spawn, watch, terminate and reclaim engine processes."""
from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Optional, Tuple

from ..logging_config import engine_output_logger
from .classifier import STDERR, STDOUT, EventKind, classify_line
from .command import EngineCommand
from .errors import CleanupFailure, EngineSpawnFailure
from .metrics import MetricsCollector
from .registry import SessionRegistry
from .session import Session
from .stop_strategy import StopStrategy, TerminationResult

LOGGER = logging.getLogger(__name__)
ENGINE_LOGGER = engine_output_logger()


class EngineProcess:
    """Handle over a running engine subprocess and its output readers."""

    def __init__(self, popen: subprocess.Popen) -> None:
        self.popen = popen
        self.readers: List[threading.Thread] = []
        self.watcher: Optional[threading.Thread] = None
        self._exited = threading.Event()

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def running(self) -> bool:
        if self._exited.is_set():
            return False
        return self.popen.poll() is None

    @property
    def returncode(self) -> Optional[int]:
        return self.popen.returncode

    def mark_exited(self) -> None:
        self._exited.set()

    def wait_exited(self, timeout: Optional[float] = None) -> bool:
        """Wait until the exit watcher has observed process exit."""

        return self._exited.wait(timeout)


class ProcessLifecycleManager:
    """Own every engine process and the single termination sequence per session."""

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        command: EngineCommand,
        collector: Optional[MetricsCollector] = None,
        stop_strategy: Optional[StopStrategy] = None,
        session_timeout: float = 600.0,
        cleanup_grace: float = 5.0,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self._registry = registry
        self._command = command
        self._collector = collector or MetricsCollector()
        self._stopper = stop_strategy or StopStrategy()
        self._session_timeout = max(0.0, float(session_timeout))
        self._cleanup_grace = max(0.0, float(cleanup_grace))
        self._on_change = on_change
        self._cleanup_lock = threading.Lock()
        self._pending_cleanups: Dict[str, Tuple[object, threading.Timer, Session]] = {}

    @property
    def command(self) -> EngineCommand:
        return self._command

    @property
    def stop_deadline(self) -> float:
        """Upper bound on how long a full SIGTERM/SIGKILL sequence may take."""

        return self._stopper.grace_timeout + self._stopper.kill_timeout + 1.0

    # ------------------------------------------------------------------
    # Spawning
    # ------------------------------------------------------------------
    def prepare_output(self, session: Session) -> None:
        """Give ``session`` an empty output directory.

        Any cleanup still pending for the id is cancelled and leftover files are
        removed first, so a stale manifest can never satisfy readiness.
        """

        with self._cleanup_lock:
            self._cancel_pending_locked(session.session_id)
            if session.output_dir.exists():
                try:
                    self.remove_directory(session.output_dir)
                except CleanupFailure as exc:
                    LOGGER.warning("%s", exc.detail)
            session.output_dir.mkdir(parents=True, exist_ok=True)

    def spawn(self, session: Session) -> EngineProcess:
        """Launch the engine for ``session`` with both output readers attached."""

        command = self._command.build(session.source_locator, session.output_dir)
        LOGGER.info("Starting engine for stream %s", session.session_id)
        LOGGER.info("Input: %s", session.source_locator)
        LOGGER.info("Output: %s", session.output_dir)
        LOGGER.debug("Engine command: %s", shlex.join(command))
        try:
            popen = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise EngineSpawnFailure(
                f"Failed to start engine: {exc}",
                session_id=session.session_id,
            ) from exc

        process = EngineProcess(popen)
        session.process = process
        for stream, channel in ((popen.stdout, STDOUT), (popen.stderr, STDERR)):
            reader = threading.Thread(
                target=self._pump,
                args=(session, stream, channel),
                name=f"engine-{channel}-{session.session_id}",
                daemon=True,
            )
            process.readers.append(reader)
            reader.start()

        watcher = threading.Thread(
            target=self._watch,
            args=(session, process),
            name=f"engine-watch-{session.session_id}",
            daemon=True,
        )
        process.watcher = watcher
        watcher.start()
        self._arm_timeout(session)
        return process

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------
    def terminate(
        self,
        process: EngineProcess,
        *,
        grace: Optional[float] = None,
        wait: bool = False,
    ) -> Optional[TerminationResult]:
        """Stop ``process`` (SIGTERM, then SIGKILL after ``grace`` seconds).

        Terminating an exited process is a no-op. Unless ``wait`` is set the
        escalation runs on a background thread and ``None`` is returned.
        """

        if not process.running:
            return TerminationResult(returncode=process.returncode, already_exited=True)
        if wait:
            return self._stopper.shutdown(process.popen, grace_timeout=grace)
        thread = threading.Thread(
            target=self._stopper.shutdown,
            args=(process.popen,),
            kwargs={"grace_timeout": grace},
            name=f"engine-stop-{process.pid}",
            daemon=True,
        )
        thread.start()
        return None

    def reclaim(self, session: Session, reason: str, *, wait: bool = False) -> Optional[Dict[str, Any]]:
        """Run the termination and purge sequence for ``session``.

        The session keeps its id and its capacity slot until the exit watcher
        sees the engine exit. Returns the final metrics summary, or ``None``
        when another caller has already claimed termination of this session.
        With ``wait`` the call returns only once the engine has exited.
        """

        return self._finalize(session, reason, kill=True, wait=wait)

    def purge_stale(self, session: Session) -> bool:
        """Fully reclaim a dead or stopping session before its id is reused.

        Waits for an engine that is still shutting down. Returns ``False`` when
        it is still running once :attr:`stop_deadline` has passed.
        """

        self._finalize(session, "replaced by new session", kill=True, wait=True)
        process = session.process
        if process is None:
            return True
        if process.watcher is not None:
            process.watcher.join(timeout=self.stop_deadline)
        return not process.running

    def shutdown(self) -> None:
        """Terminate every session, wait for the engines, then remove all directories."""

        sessions = self._registry.sessions()
        for session in sessions:
            self._finalize(session, "shutdown", kill=True)
        deadline = time.monotonic() + self.stop_deadline
        for session in sessions:
            process = session.process
            if process is None or process.watcher is None:
                continue
            if not process.wait_exited(max(0.0, deadline - time.monotonic())):
                LOGGER.error(
                    "Engine for %s (pid=%s) still running after shutdown deadline",
                    session.session_id,
                    process.pid,
                )
        with self._cleanup_lock:
            pending = list(self._pending_cleanups.values())
            self._pending_cleanups.clear()
            for _token, timer, session in pending:
                timer.cancel()
                try:
                    self.remove_directory(session.output_dir)
                except CleanupFailure as exc:
                    LOGGER.error("%s", exc.detail)
                self._registry.discard_metrics(session.session_id, session.metrics)

    # ------------------------------------------------------------------
    # Filesystem cleanup
    # ------------------------------------------------------------------
    def schedule_cleanup(self, session: Session, *, delay: Optional[float] = None) -> None:
        """Remove the session directory after ``delay`` seconds.

        The delay lets in-flight readers finish fetching chunks. Scheduling again
        for the same id replaces the pending cleanup.
        """

        grace = self._cleanup_grace if delay is None else max(0.0, delay)
        token = object()
        timer = threading.Timer(grace, self._deferred_cleanup, args=(session, token))
        timer.daemon = True
        timer.name = f"engine-cleanup-{session.session_id}"
        with self._cleanup_lock:
            self._cancel_pending_locked(session.session_id)
            self._pending_cleanups[session.session_id] = (token, timer, session)
        timer.start()

    def pending_cleanup_ids(self) -> set[str]:
        with self._cleanup_lock:
            return set(self._pending_cleanups)

    @staticmethod
    def remove_directory(path: Path) -> bool:
        """Delete ``path`` file by file; a failing file does not stop the rest.

        Raises :class:`CleanupFailure` when the directory itself survives.
        """

        if not path.exists():
            return False
        for entry in list(path.iterdir()):
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                LOGGER.warning("Could not delete file %s: %s", entry, exc)
        try:
            path.rmdir()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise CleanupFailure(f"Error cleaning up stream directory {path}: {exc}") from exc
        LOGGER.info("Cleaned up directory for stream %s", path.name)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _finalize(
        self,
        session: Session,
        reason: str,
        *,
        kill: bool,
        wait: bool = False,
    ) -> Optional[Dict[str, Any]]:
        if not session.claim_termination():
            if wait:
                self._await_exit(session)
            return None
        session.cancel_timeout()
        summary = session.metrics.final_summary()
        summary["reason"] = reason
        LOGGER.info("Final metrics for %s: %s", session.session_id, summary)
        process = session.process
        if kill and process is not None and process.running:
            self.terminate(process, wait=wait)
        if process is None or not process.running:
            self._release(session)
        else:
            # The exit watcher releases the id and the slot once the engine is gone.
            self._notify()
        return summary

    def _release(self, session: Session) -> None:
        if not session.mark_terminated():
            return
        self._registry.remove(session.session_id, session)
        self.schedule_cleanup(session)
        self._notify()

    def _await_exit(self, session: Session) -> None:
        process = session.process
        if process is None:
            return
        if not process.wait_exited(self.stop_deadline):
            LOGGER.warning(
                "Engine for %s (pid=%s) still running after %.1fs",
                session.session_id,
                process.pid,
                self.stop_deadline,
            )

    def _pump(self, session: Session, stream: Optional[IO[str]], channel: str) -> None:
        if stream is None:
            return
        try:
            for line in stream:
                self._handle_line(session, line, channel)
        except ValueError:
            LOGGER.debug("Engine %s stream closed for %s", channel, session.session_id)
        finally:
            try:
                stream.close()
            except OSError:
                LOGGER.debug("Failed to close engine %s for %s", channel, session.session_id, exc_info=True)

    def _handle_line(self, session: Session, line: str, channel: str) -> None:
        text = line.rstrip()
        if not text:
            return
        ENGINE_LOGGER.debug("[%s] %s: %s", session.session_id, channel, text)
        for event in classify_line(text, channel):
            if event.kind is EventKind.READY:
                if session.signals.mark_soft_ready():
                    LOGGER.info("Engine for %s opened its output", session.session_id)
                continue
            fatal_text = self._collector.apply(session.session_id, session.metrics, event)
            if fatal_text is not None and not session.signals.fatal.is_set():
                LOGGER.error("Fatal engine condition for %s: %s", session.session_id, fatal_text)
                session.signals.mark_fatal(fatal_text)

    def _watch(self, session: Session, process: EngineProcess) -> None:
        returncode = process.popen.wait()
        for reader in process.readers:
            reader.join(timeout=2.0)
        LOGGER.info("Engine process [%s] exited with code %s", session.session_id, returncode)
        try:
            if self._finalize(session, f"process exited ({returncode})", kill=False) is None:
                self._release(session)
        finally:
            session.signals.mark_exited(returncode)
            process.mark_exited()

    def _arm_timeout(self, session: Session) -> None:
        if self._session_timeout <= 0:
            return
        timer = threading.Timer(self._session_timeout, self._on_timeout, args=(session,))
        timer.daemon = True
        timer.name = f"engine-timeout-{session.session_id}"
        session.timeout_timer = timer
        timer.start()

    def _on_timeout(self, session: Session) -> None:
        LOGGER.info("Stream %s timed out, stopping...", session.session_id)
        self.reclaim(session, "timeout")

    def _deferred_cleanup(self, session: Session, token: object) -> None:
        with self._cleanup_lock:
            entry = self._pending_cleanups.get(session.session_id)
            if entry is None or entry[0] is not token:
                return
            del self._pending_cleanups[session.session_id]
            current = self._registry.get(session.session_id)
            if current is not None and current is not session:
                LOGGER.debug("Skipping cleanup for %s; id reused by a new session", session.session_id)
                return
            try:
                self.remove_directory(session.output_dir)
            except CleanupFailure as exc:
                LOGGER.error("%s", exc.detail)
            self._registry.discard_metrics(session.session_id, session.metrics)

    def _cancel_pending_locked(self, session_id: str) -> None:
        entry = self._pending_cleanups.pop(session_id, None)
        if entry is not None:
            entry[1].cancel()

    def _notify(self) -> None:
        callback = self._on_change
        if callback is None:
            return
        try:
            callback()
        except Exception:  # pragma: no cover - defensive
            LOGGER.debug("Session change callback raised an exception", exc_info=True)


__all__ = ["EngineProcess", "ProcessLifecycleManager"]
