"""Signal orchestration used to stop engine processes."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from subprocess import Popen, TimeoutExpired
from typing import Optional

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TerminationResult:
    """Outcome of attempting to stop an engine process."""

    returncode: Optional[int]
    escalated: bool = False
    already_exited: bool = False


class StopStrategy:
    """Send SIGTERM, then escalate to SIGKILL once the grace window expires."""

    def __init__(self, *, grace_timeout: float = 5.0, kill_timeout: float = 2.0) -> None:
        self._grace_timeout = max(0.0, grace_timeout)
        self._kill_timeout = max(0.0, kill_timeout)

    @property
    def grace_timeout(self) -> float:
        return self._grace_timeout

    @property
    def kill_timeout(self) -> float:
        return self._kill_timeout

    def shutdown(self, process: Popen, *, grace_timeout: Optional[float] = None) -> TerminationResult:
        """Stop ``process``; calling this on an exited process is a no-op."""

        if process.poll() is not None:
            return TerminationResult(returncode=process.returncode, already_exited=True)

        grace = self._grace_timeout if grace_timeout is None else max(0.0, grace_timeout)
        try:
            LOGGER.info("Sending SIGTERM to engine (pid=%s)", process.pid)
            process.terminate()
        except ProcessLookupError:
            return TerminationResult(returncode=process.poll(), already_exited=True)
        except OSError as exc:  # pragma: no cover - system dependent
            LOGGER.warning("Failed to signal engine process %s: %s", process.pid, exc)

        returncode = self._wait_for_exit(process, grace)
        if returncode is not None:
            LOGGER.info("Engine (pid=%s) exited with %s", process.pid, returncode)
            return TerminationResult(returncode=returncode)

        LOGGER.warning("Force killing engine (pid=%s) after %.1fs grace", process.pid, grace)
        try:
            process.kill()
        except ProcessLookupError:
            return TerminationResult(returncode=process.poll(), escalated=True)
        except OSError as exc:  # pragma: no cover - system dependent
            LOGGER.error("Failed to kill engine process %s: %s", process.pid, exc)
        returncode = self._wait_for_exit(process, self._kill_timeout)
        if returncode is None:
            LOGGER.error("Engine process %s still running after SIGKILL attempt", process.pid)
            returncode = process.returncode
        return TerminationResult(returncode=returncode, escalated=True)

    @staticmethod
    def _wait_for_exit(process: Popen, timeout: float) -> Optional[int]:
        try:
            return process.wait(timeout=timeout)
        except TimeoutExpired:
            return None


__all__ = ["StopStrategy", "TerminationResult"]
