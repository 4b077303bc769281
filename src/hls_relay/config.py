"""Configuration helpers for the relay service."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import find_dotenv, load_dotenv


def _ensure_dotenv_loaded() -> None:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path, override=False)


_ensure_dotenv_loaded()

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DEFAULT_ENGINE_INPUT_ARGS = (
    "-hide_banner -loglevel info "
    "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5 -reconnect_at_eof 1 "
    "-timeout 10000000"
)

DEFAULT_ENGINE_OUTPUT_ARGS = (
    "-c:v libx264 -c:a aac -preset ultrafast -tune zerolatency "
    "-profile:v baseline -level 3.0 -pix_fmt yuv420p "
    "-r 25 -g 50 -keyint_min 25 -sc_threshold 0 "
    "-b:v 1000k -maxrate 1200k -bufsize 2000k "
    "-b:a 128k -ar 44100 -ac 2"
)


def _env(name: str, *fallbacks: str) -> Optional[str]:
    for key in (name, *fallbacks):
        raw = os.getenv(key)
        if raw is not None and raw.strip() != "":
            return raw.strip()
    return None


def _env_int(name: str, default: int, *fallbacks: str) -> int:
    raw = _env(name, *fallbacks)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _legacy_millis(name: str, legacy: str, default: float) -> float:
    """Read ``name`` in seconds, or the legacy ``legacy`` variable in milliseconds."""

    raw = _env(name)
    if raw is not None:
        try:
            return float(raw)
        except ValueError:
            return default
    legacy_raw = _env(legacy)
    if legacy_raw is not None:
        try:
            return float(legacy_raw) / 1000.0
        except ValueError:
            return default
    return default


def build_default_config() -> Dict[str, Any]:
    """Return the base configuration mapping for the relay service."""

    port = _env_int("HLS_RELAY_PORT", 3001, "PORT")
    output_dir = _env("HLS_RELAY_OUTPUT_DIR") or str(Path.home() / "hls_relay")
    public_base = _env("HLS_RELAY_PUBLIC_BASE_URL") or f"http://localhost:{port}/hls/"

    cfg: Dict[str, Any] = {
        "HLS_RELAY_PORT": port,
        "HLS_RELAY_OUTPUT_DIR": output_dir,
        "HLS_RELAY_PUBLIC_BASE_URL": public_base,
        "HLS_RELAY_MAX_STREAMS": _env_int("HLS_RELAY_MAX_STREAMS", 20, "MAX_STREAMS"),
        "HLS_RELAY_SEGMENT_DURATION": _env_int("HLS_RELAY_SEGMENT_DURATION", 2, "SEGMENT_DURATION"),
        "HLS_RELAY_MAX_SEGMENTS": _env_int("HLS_RELAY_MAX_SEGMENTS", 10, "MAX_SEGMENTS"),
        "HLS_RELAY_STREAM_TIMEOUT_SECONDS": _legacy_millis(
            "HLS_RELAY_STREAM_TIMEOUT_SECONDS", "STREAM_TIMEOUT", 600.0
        ),
        "HLS_RELAY_CLEANUP_INTERVAL_SECONDS": _legacy_millis(
            "HLS_RELAY_CLEANUP_INTERVAL_SECONDS", "CLEANUP_INTERVAL", 30.0
        ),
        "HLS_RELAY_READY_TIMEOUT_SECONDS": _env_float("HLS_RELAY_READY_TIMEOUT_SECONDS", 30.0),
        "HLS_RELAY_READY_POLL_SECONDS": _env_float("HLS_RELAY_READY_POLL_SECONDS", 1.5),
        "HLS_RELAY_STOP_GRACE_SECONDS": _env_float("HLS_RELAY_STOP_GRACE_SECONDS", 5.0),
        "HLS_RELAY_CLEANUP_GRACE_SECONDS": _env_float("HLS_RELAY_CLEANUP_GRACE_SECONDS", 5.0),
        "HLS_RELAY_ORPHAN_AGE_SECONDS": _env_float("HLS_RELAY_ORPHAN_AGE_SECONDS", 600.0),
        "HLS_RELAY_MAX_ERRORS": _env_int("HLS_RELAY_MAX_ERRORS", 20),
        "HLS_RELAY_FATAL_ERROR_THRESHOLD": _env_int("HLS_RELAY_FATAL_ERROR_THRESHOLD", 10),
        "HLS_RELAY_MAX_UPTIME_SECONDS": _env_float("HLS_RELAY_MAX_UPTIME_SECONDS", 24 * 60 * 60.0),
        "HLS_RELAY_FFMPEG_BINARY": _env("HLS_RELAY_FFMPEG_BINARY") or "ffmpeg",
        "HLS_RELAY_MANIFEST_NAME": _env("HLS_RELAY_MANIFEST_NAME") or "playlist.m3u8",
        "HLS_RELAY_ENGINE_INPUT_ARGS": _env("HLS_RELAY_ENGINE_INPUT_ARGS") or DEFAULT_ENGINE_INPUT_ARGS,
        "HLS_RELAY_ENGINE_OUTPUT_ARGS": _env("HLS_RELAY_ENGINE_OUTPUT_ARGS") or DEFAULT_ENGINE_OUTPUT_ARGS,
        "HLS_RELAY_ALLOWED_SCHEMES": _env("HLS_RELAY_ALLOWED_SCHEMES") or "http,https,rtmp,rtsp",
        "HLS_RELAY_CORS_ORIGIN": _env("HLS_RELAY_CORS_ORIGIN", "ALLOWED_ORIGINS") or "*",
        "HLS_RELAY_SWEEPER_ENABLED": _env_bool("HLS_RELAY_SWEEPER_ENABLED", True),
        "HLS_RELAY_STATUS_REDIS_URL": _env("HLS_RELAY_STATUS_REDIS_URL", "REDIS_URL"),
        "HLS_RELAY_STATUS_KEY": _env("HLS_RELAY_STATUS_KEY") or "hls_relay:streams",
        "HLS_RELAY_STATUS_CHANNEL": _env("HLS_RELAY_STATUS_CHANNEL") or "hls_relay:streams:events",
        "HLS_RELAY_STATUS_TTL_SECONDS": _env_int("HLS_RELAY_STATUS_TTL_SECONDS", 30),
        "HLS_RELAY_STATUS_HEARTBEAT_SECONDS": _env_int("HLS_RELAY_STATUS_HEARTBEAT_SECONDS", 5),
    }
    return cfg


__all__ = [
    "DEFAULT_ENGINE_INPUT_ARGS",
    "DEFAULT_ENGINE_OUTPUT_ARGS",
    "PROJECT_ROOT",
    "build_default_config",
]
