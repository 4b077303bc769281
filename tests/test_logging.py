import logging
from pathlib import Path

import pytest

from conftest import wait_for
from hls_relay import logging_config
from hls_relay.engine import ProcessLifecycleManager, Session, SessionRegistry
from hls_relay.logging_config import ENGINE_OUTPUT_LOGGER, configure_logging, resolve_level


@pytest.mark.parametrize(
    ("value", "expected"),
    [("debug", logging.DEBUG), ("WARNING", logging.WARNING), ("15", 15), (30, 30), ("", logging.INFO), ("loud", logging.INFO)],
)
def test_resolve_level(value, expected) -> None:
    assert resolve_level(value, logging.INFO) == expected


def test_engine_output_level_is_independent(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    root = logging.getLogger()
    engine_logger = logging.getLogger(ENGINE_OUTPUT_LOGGER)
    saved = (root.level, list(root.handlers), engine_logger.level)
    monkeypatch.setattr(logging_config, "_CONFIGURED", False)
    monkeypatch.setattr(logging_config, "_LOG_FILE", None)
    try:
        log_file = configure_logging("relay-test", log_dir=tmp_path, level="warning", engine_output_level="debug")

        assert log_file.parent == tmp_path
        assert log_file.name.startswith("relay-test-")
        assert root.level == logging.WARNING
        assert engine_logger.isEnabledFor(logging.DEBUG)
        assert not logging.getLogger("hls_relay.engine.supervisor").isEnabledFor(logging.INFO)
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        root.setLevel(saved[0])
        for handler in saved[1]:
            root.addHandler(handler)
        engine_logger.setLevel(saved[2])


def test_engine_lines_go_to_engine_logger(
    fake_command, output_root: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.DEBUG, logger=ENGINE_OUTPUT_LOGGER)
    lifecycle = ProcessLifecycleManager(SessionRegistry(), command=fake_command, cleanup_grace=0.1)
    session = Session(
        session_id="cam1",
        source_locator="http://refused/live.flv",
        output_dir=output_root / "cam1",
        manifest_name="playlist.m3u8",
    )
    lifecycle.prepare_output(session)
    lifecycle.spawn(session)
    try:
        assert session.signals.exited.wait(5.0)
        assert wait_for(
            lambda: any(
                record.name == ENGINE_OUTPUT_LOGGER and "Connection refused" in record.getMessage()
                for record in caplog.records
            )
        )
    finally:
        lifecycle.shutdown()
