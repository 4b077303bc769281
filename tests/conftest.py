import sys
import time
from pathlib import Path
from typing import Callable, Iterator

import pytest

from hls_relay.engine import EngineCommand, ReadinessDetector, StopStrategy, Supervisor

FAKE_ENGINE = Path(__file__).resolve().parent / "fake_engine.py"


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.05) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture(autouse=True)
def _log_dir(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HLS_RELAY_LOG_DIR", str(tmp_path_factory.mktemp("logs")))


@pytest.fixture
def fake_command() -> EngineCommand:
    return EngineCommand(binary=sys.executable, input_args=(str(FAKE_ENGINE),))


@pytest.fixture
def output_root(tmp_path: Path) -> Path:
    root = tmp_path / "hls"
    root.mkdir()
    return root


@pytest.fixture
def make_supervisor(output_root: Path, fake_command: EngineCommand) -> Iterator[Callable[..., Supervisor]]:
    created: list[Supervisor] = []

    def _factory(**overrides) -> Supervisor:
        options = dict(
            output_root=output_root,
            command=fake_command,
            max_streams=3,
            public_base_url="http://localhost:3001/hls/",
            readiness=ReadinessDetector(poll_interval=0.05, timeout=3.0),
            stop_strategy=StopStrategy(grace_timeout=1.0),
            cleanup_grace=0.2,
            session_timeout=30.0,
        )
        options.update(overrides)
        supervisor = Supervisor(**options)
        created.append(supervisor)
        return supervisor

    yield _factory

    for supervisor in created:
        supervisor.shutdown()


@pytest.fixture
def supervisor(make_supervisor: Callable[..., Supervisor]) -> Supervisor:
    return make_supervisor()
