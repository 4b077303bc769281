from pathlib import Path

import pytest

from hls_relay.config import build_default_config
from hls_relay.engine import EngineCommand

LEGACY_VARS = ("PORT", "MAX_STREAMS", "STREAM_TIMEOUT", "CLEANUP_INTERVAL", "ALLOWED_ORIGINS", "REDIS_URL")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in LEGACY_VARS:
        monkeypatch.delenv(name, raising=False)
    for name in ("HLS_RELAY_PORT", "HLS_RELAY_MAX_STREAMS", "HLS_RELAY_STREAM_TIMEOUT_SECONDS", "HLS_RELAY_PUBLIC_BASE_URL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    cfg = build_default_config()

    assert cfg["HLS_RELAY_PORT"] == 3001
    assert cfg["HLS_RELAY_MAX_STREAMS"] == 20
    assert cfg["HLS_RELAY_STREAM_TIMEOUT_SECONDS"] == 600.0
    assert cfg["HLS_RELAY_PUBLIC_BASE_URL"] == "http://localhost:3001/hls/"
    assert cfg["HLS_RELAY_MANIFEST_NAME"] == "playlist.m3u8"


def test_legacy_variables_are_honoured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("MAX_STREAMS", "5")
    monkeypatch.setenv("STREAM_TIMEOUT", "120000")
    monkeypatch.setenv("CLEANUP_INTERVAL", "15000")

    cfg = build_default_config()

    assert cfg["HLS_RELAY_PORT"] == 8080
    assert cfg["HLS_RELAY_MAX_STREAMS"] == 5
    assert cfg["HLS_RELAY_STREAM_TIMEOUT_SECONDS"] == 120.0
    assert cfg["HLS_RELAY_CLEANUP_INTERVAL_SECONDS"] == 15.0
    assert cfg["HLS_RELAY_PUBLIC_BASE_URL"] == "http://localhost:8080/hls/"


def test_prefixed_variables_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MAX_STREAMS", "5")
    monkeypatch.setenv("HLS_RELAY_MAX_STREAMS", "7")

    assert build_default_config()["HLS_RELAY_MAX_STREAMS"] == 7


def test_engine_command_is_deterministic(tmp_path: Path) -> None:
    command = EngineCommand.from_config(build_default_config())

    argv = command.build("rtmp://origin/app/key", tmp_path)

    assert argv == command.build("rtmp://origin/app/key", tmp_path)
    assert argv[0] == "ffmpeg"
    assert argv[argv.index("-i") + 1] == "rtmp://origin/app/key"
    assert argv[argv.index("-hls_time") + 1] == "2"
    assert argv[argv.index("-hls_list_size") + 1] == "10"
    assert argv[argv.index("-hls_segment_filename") + 1] == str(tmp_path / "segment_%05d.ts")
    assert argv[-1] == str(tmp_path / "playlist.m3u8")
    assert "-reconnect" in argv
