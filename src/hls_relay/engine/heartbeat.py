"""Periodic background loop used by the sweeper and status broadcaster."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional


LOGGER = logging.getLogger(__name__)


class HeartbeatLoop:
    """Run a daemon thread that invokes ``callback`` every ``interval_seconds``.

    A callback that raises is logged and the loop keeps ticking.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], None],
        *,
        name: str = "hls-relay-heartbeat",
    ) -> None:
        self._interval = max(0.05, float(interval_seconds))
        self._callback = callback
        self._name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> None:
        thread = self._thread
        if thread and thread.is_alive():
            return

        def _worker() -> None:
            while not self._stop_event.wait(self._interval):
                try:
                    self._callback()
                except Exception:
                    LOGGER.exception("%s tick failed", self._name)

        self._stop_event.clear()
        thread = threading.Thread(target=_worker, name=self._name, daemon=True)
        self._thread = thread
        thread.start()

    def stop(self) -> None:
        thread = self._thread
        if thread is None:
            self._stop_event.clear()
            return
        if thread.is_alive():
            self._stop_event.set()
            if thread is not threading.current_thread():
                thread.join(timeout=2.0)
        self._stop_event.clear()
        self._thread = None

    def running(self) -> bool:
        thread = self._thread
        return bool(thread and thread.is_alive())


__all__ = ["HeartbeatLoop"]
