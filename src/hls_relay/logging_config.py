"""Logging helpers for the relay service."""
from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

# Engine stdout/stderr lines are logged here, one record per line.
ENGINE_OUTPUT_LOGGER = "hls_relay.engine.output"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"

_LOG_FILE: Optional[Path] = None
_CONFIGURED = False


def resolve_level(value: Union[str, int, None], default: int) -> int:
    """Turn ``"debug"``, ``"20"`` or ``20`` into a logging level."""

    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return default
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text.upper())
    return level if isinstance(level, int) else default


def engine_output_logger() -> logging.Logger:
    return logging.getLogger(ENGINE_OUTPUT_LOGGER)


def configure_logging(
    prefix: str = "relay",
    *,
    log_dir: Optional[Path] = None,
    level: Union[str, int, None] = None,
    engine_output_level: Union[str, int, None] = None,
) -> Path:
    """Configure root logging to write to the service's log directory.

    ``HLS_RELAY_LOG_LEVEL`` sets the root level (INFO by default).
    ``HLS_RELAY_ENGINE_LOG_LEVEL`` sets the engine output logger on its own, so
    raw ffmpeg chatter can be switched to DEBUG without flooding the rest.
    """

    global _CONFIGURED, _LOG_FILE

    if _CONFIGURED and _LOG_FILE is not None:
        return _LOG_FILE

    service_root = Path(__file__).resolve().parents[2]
    env_dir = os.getenv("HLS_RELAY_LOG_DIR")
    log_directory = Path(env_dir).expanduser() if env_dir else service_root / "logs"
    if log_dir is not None:
        log_directory = Path(log_dir)
    log_directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_file = log_directory / f"{prefix}-{timestamp}.log"

    root_level = resolve_level(
        level if level is not None else os.getenv("HLS_RELAY_LOG_LEVEL"),
        logging.INFO,
    )
    root = logging.getLogger()
    root.setLevel(root_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    engine_level = engine_output_level
    if engine_level is None:
        engine_level = os.getenv("HLS_RELAY_ENGINE_LOG_LEVEL")
    if engine_level is not None:
        engine_output_logger().setLevel(resolve_level(engine_level, root_level))

    _CONFIGURED = True
    _LOG_FILE = log_file
    root.info("Logging to %s", log_file)
    return log_file


def current_log_file() -> Optional[Path]:
    """Return the most recent log file configured via ``configure_logging``."""

    return _LOG_FILE


__all__ = [
    "ENGINE_OUTPUT_LOGGER",
    "configure_logging",
    "current_log_file",
    "engine_output_logger",
    "resolve_level",
]
