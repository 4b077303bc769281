"""Run the relay with Flask's threaded development server."""
from __future__ import annotations

import logging
import signal
import sys
from types import FrameType
from typing import Optional

from .app import create_app
from .engine import Supervisor

LOGGER = logging.getLogger(__name__)


def _install_signal_handlers(supervisor: Supervisor) -> None:
    def _handle(signum: int, _frame: Optional[FrameType]) -> None:
        LOGGER.info("Received %s; shutting down gracefully", signal.Signals(signum).name)
        supervisor.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)


def main() -> None:
    app = create_app()
    supervisor = app.extensions["hls_relay_supervisor"]
    _install_signal_handlers(supervisor)
    port = int(app.config.get("HLS_RELAY_PORT", 3001))
    LOGGER.info("HLS relay listening on port %d", port)
    LOGGER.info("HLS output directory: %s", supervisor.output_root)
    LOGGER.info("Max concurrent streams: %d", supervisor.max_streams)
    app.run(host="0.0.0.0", port=port, threaded=True, use_reloader=False)


if __name__ == "__main__":
    main()
