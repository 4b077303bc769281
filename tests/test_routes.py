import shlex
import sys
from http import HTTPStatus
from pathlib import Path

import pytest

from conftest import FAKE_ENGINE, wait_for
from hls_relay.app import create_app

READY = "http://ready/live.flv?chunks=3"


@pytest.fixture
def app(tmp_path: Path):
    application = create_app(
        {
            "HLS_RELAY_OUTPUT_DIR": str(tmp_path / "hls"),
            "HLS_RELAY_FFMPEG_BINARY": sys.executable,
            "HLS_RELAY_ENGINE_INPUT_ARGS": shlex.quote(str(FAKE_ENGINE)),
            "HLS_RELAY_ENGINE_OUTPUT_ARGS": "",
            "HLS_RELAY_MAX_STREAMS": 2,
            "HLS_RELAY_READY_POLL_SECONDS": 0.05,
            "HLS_RELAY_READY_TIMEOUT_SECONDS": 3,
            "HLS_RELAY_STOP_GRACE_SECONDS": 1,
            "HLS_RELAY_CLEANUP_GRACE_SECONDS": 0.2,
            "HLS_RELAY_SWEEPER_ENABLED": False,
            "HLS_RELAY_STATUS_REDIS_URL": None,
            "HLS_RELAY_PUBLIC_BASE_URL": "http://relay.test/hls/",
        }
    )
    application.config.update(TESTING=True)
    yield application
    application.extensions["hls_relay_supervisor"].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


def _start(client, stream_id: str, source: str = READY):
    return client.post("/api/stream/start", json={"streamId": stream_id, "flvUrl": source})


def test_start_status_and_media(client) -> None:
    response = _start(client, "cam2")
    assert response.status_code == HTTPStatus.OK
    body = response.get_json()
    assert body["success"] is True
    assert body["status"] == "ready"
    assert body["hls_url"] == "http://relay.test/hls/cam2/playlist.m3u8"

    status = client.get("/api/stream/status/cam2").get_json()
    assert status["active"] is True
    assert status["segment_count_from_manifest"] == 3

    manifest = client.get("/hls/cam2/playlist.m3u8")
    assert manifest.status_code == HTTPStatus.OK
    assert manifest.mimetype == "application/vnd.apple.mpegurl"
    assert "no-cache" in manifest.headers["Cache-Control"]
    assert manifest.get_data(as_text=True).startswith("#EXTM3U")

    chunk = client.get("/hls/cam2/segment_00000.ts")
    assert chunk.status_code == HTTPStatus.OK
    assert chunk.mimetype == "video/mp2t"
    assert chunk.headers["Cache-Control"] == "public, max-age=3600"
    assert chunk.headers["Accept-Ranges"] == "bytes"

    partial = client.get("/hls/cam2/segment_00000.ts", headers={"Range": "bytes=0-9"})
    assert partial.status_code == HTTPStatus.PARTIAL_CONTENT
    assert len(partial.get_data()) == 10


def test_missing_media_is_404(client) -> None:
    assert client.get("/hls/nobody/playlist.m3u8").status_code == HTTPStatus.NOT_FOUND


def test_invalid_input_maps_to_400(client) -> None:
    response = _start(client, "cam1", "notaurl")
    assert response.status_code == HTTPStatus.BAD_REQUEST
    body = response.get_json()
    assert body["success"] is False
    assert body["reason"] == "invalid_input"

    missing = client.post("/api/stream/start", json={"flvUrl": READY})
    assert missing.status_code == HTTPStatus.BAD_REQUEST


def test_capacity_maps_to_429(client) -> None:
    assert _start(client, "cam1").status_code == HTTPStatus.OK
    assert _start(client, "cam2").status_code == HTTPStatus.OK

    response = _start(client, "cam3")

    assert response.status_code == HTTPStatus.TOO_MANY_REQUESTS
    body = response.get_json()
    assert body["reason"] == "capacity_exceeded"
    assert body["active_streams"] == 2
    assert body["max_streams"] == 2


def test_fatal_start_maps_to_500_without_traceback(client) -> None:
    response = _start(client, "cam1", "http://refused/live.flv")

    assert response.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    body = response.get_json()
    assert body["reason"] == "fatal_stream_error"
    assert "Connection refused" in body["error"]
    assert "Traceback" not in response.get_data(as_text=True)


def test_duplicate_start_reports_already_active(client) -> None:
    _start(client, "cam1")

    body = _start(client, "cam1").get_json()

    assert body["status"] == "already_active"
    assert body["stream_id"] == "cam1"


def test_stop_twice_succeeds(client, app) -> None:
    _start(client, "cam1")

    first = client.post("/api/stream/stop", json={"streamId": "cam1"})
    second = client.post("/api/stream/stop", json={"streamId": "cam1"})

    assert first.status_code == HTTPStatus.OK
    assert first.get_json()["stopped"] is True
    assert second.status_code == HTTPStatus.OK
    assert second.get_json()["stopped"] is False
    output_dir = Path(app.config["HLS_RELAY_OUTPUT_DIR"]) / "cam1"
    assert wait_for(lambda: not output_dir.exists(), timeout=3.0)


def test_active_and_health(client) -> None:
    _start(client, "cam1")

    active = client.get("/api/streams/active").get_json()
    assert active["count"] == 1
    assert active["utilization_percent"] == 50.0

    health = client.get("/api/health").get_json()
    assert health["service"] == "hls-relay"
    assert health["active_count"] == 1
    assert health["capacity"] == 2
    assert health["config"]["max_streams"] == 2


def test_cors_echoes_origin(client) -> None:
    response = client.get("/api/streams/active", headers={"Origin": "http://player.test"})

    assert response.headers["Access-Control-Allow-Origin"] == "http://player.test"
