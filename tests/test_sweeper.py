import os
import time
from pathlib import Path

from conftest import wait_for
from hls_relay.engine import Session
from hls_relay.engine.sweeper import DEAD_PROCESS, IDLE_TIMEOUT, MAX_UPTIME, TOO_MANY_ERRORS

READY = "http://ready/live.flv?chunks=2"


class FakeProcess:
    def __init__(self, running: bool) -> None:
        self.running = running
        self.pid = 1
        self.returncode = None if running else 1
        self.watcher = None


def _session(output_root: Path, *, now: float, running: bool = True) -> Session:
    session = Session(
        session_id="cam1",
        source_locator=READY,
        output_dir=output_root / "cam1",
        manifest_name="playlist.m3u8",
        now=now,
    )
    session.process = FakeProcess(running)
    return session


def test_decide_is_first_match_wins(supervisor, output_root: Path) -> None:
    sweeper = supervisor.sweeper
    now = 1_000_000.0

    dead = _session(output_root, now=now - 100_000, running=False)
    dead.metrics.error_count = 50
    assert sweeper.decide(dead, now) == DEAD_PROCESS

    idle = _session(output_root, now=now - 100)
    idle.last_activity_at = now - 31
    idle.metrics.error_count = 50
    assert sweeper.decide(idle, now) == IDLE_TIMEOUT

    noisy = _session(output_root, now=now - 10)
    noisy.metrics.error_count = 21
    assert sweeper.decide(noisy, now) == TOO_MANY_ERRORS

    stopping = _session(output_root, now=now - 100_000, running=True)
    stopping.metrics.error_count = 50
    assert stopping.claim_termination() is True
    assert sweeper.decide(stopping, now) is None

    boundary = _session(output_root, now=now - 10)
    boundary.metrics.error_count = 20
    assert sweeper.decide(boundary, now) is None

    old = _session(output_root, now=now - 86_401)
    old.last_activity_at = now
    assert sweeper.decide(old, now) == MAX_UPTIME


def test_too_many_errors_is_reclaimed_on_next_sweep(supervisor, output_root: Path) -> None:
    supervisor.start_session(READY, "cam1")
    session = supervisor.registry.get("cam1")
    for _ in range(21):
        session.metrics.record_error("decode error")
    assert supervisor.registry.get("cam1") is session
    assert session.process.running is True

    report = supervisor.sweeper.run_once()

    assert report.reclaimed == [("cam1", TOO_MANY_ERRORS)]
    assert supervisor.sweeper.run_once().reclaimed == []
    assert wait_for(lambda: not session.process.running, timeout=3.0)
    assert wait_for(lambda: supervisor.registry.get("cam1") is None, timeout=3.0)
    assert wait_for(lambda: not (output_root / "cam1").exists(), timeout=3.0)


def test_healthy_sessions_are_untouched(supervisor) -> None:
    supervisor.start_session(READY, "cam1")

    report = supervisor.sweeper.run_once()

    assert report.reclaimed == []
    assert supervisor.registry.get("cam1") is not None


def test_orphan_directories_are_removed_by_age(supervisor, output_root: Path) -> None:
    old = output_root / "ghost_old"
    young = output_root / "ghost_young"
    for directory in (old, young):
        directory.mkdir()
        (directory / "segment_00001.ts").write_bytes(b"x")
    past = time.time() - 3600
    os.utime(old, (past, past))
    supervisor.start_session(READY, "cam1")
    live_dir = output_root / "cam1"
    os.utime(live_dir, (past, past))

    report = supervisor.sweeper.run_once()

    assert report.orphans_removed == ["ghost_old"]
    assert not old.exists()
    assert young.exists()
    assert live_dir.exists()


def test_background_loop_runs_sweeps(make_supervisor) -> None:
    supervisor = make_supervisor(sweep_interval=0.1)
    supervisor.start_session(READY, "cam1")
    supervisor.registry.get("cam1").metrics.error_count = 99

    supervisor.start_background()
    try:
        assert supervisor.sweeper.running() is True
        assert wait_for(lambda: supervisor.registry.get("cam1") is None, timeout=3.0)
    finally:
        supervisor.sweeper.stop()
    assert supervisor.sweeper.running() is False
