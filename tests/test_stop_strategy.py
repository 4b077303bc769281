import subprocess
import sys

from hls_relay.engine import StopStrategy

IGNORE_SIGTERM = "import signal, time\nsignal.signal(signal.SIGTERM, signal.SIG_IGN)\nprint('ok', flush=True)\ntime.sleep(60)\n"


def test_stop_terminates_process() -> None:
    process = subprocess.Popen(["sleep", "60"])  # noqa: S603, S607 - testing signal handling
    try:
        result = StopStrategy(grace_timeout=2.0).shutdown(process)
    finally:
        if process.poll() is None:
            process.kill()

    assert process.poll() is not None
    assert result.escalated is False
    assert result.already_exited is False


def test_stop_escalates_to_kill() -> None:
    process = subprocess.Popen(  # noqa: S603 - testing signal handling
        [sys.executable, "-c", IGNORE_SIGTERM],
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        assert process.stdout is not None
        process.stdout.readline()
        result = StopStrategy(grace_timeout=0.3).shutdown(process)
    finally:
        if process.poll() is None:
            process.kill()
        process.wait()
        if process.stdout is not None:
            process.stdout.close()

    assert result.escalated is True
    assert result.returncode is not None


def test_stop_on_exited_process_is_noop() -> None:
    process = subprocess.Popen([sys.executable, "-c", "pass"])  # noqa: S603
    process.wait()

    result = StopStrategy().shutdown(process)

    assert result.already_exited is True
    assert result.returncode == 0
