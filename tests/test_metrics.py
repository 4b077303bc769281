import threading

from hls_relay.engine.classifier import EventKind, OutputEvent
from hls_relay.engine.metrics import MetricsCollector, SessionMetrics


def test_collector_counts_events() -> None:
    metrics = SessionMetrics(started_at=100.0)
    collector = MetricsCollector(clock=lambda: 150.0)

    assert collector.apply("cam", metrics, OutputEvent(EventKind.RECONNECT, "reconnect")) is None
    assert collector.apply("cam", metrics, OutputEvent(EventKind.CHUNK, "segment_1.ts")) is None
    assert collector.apply("cam", metrics, OutputEvent(EventKind.ERROR, "decode error")) is None

    snapshot = metrics.snapshot()
    assert snapshot["reconnect_count"] == 1
    assert snapshot["segment_count"] == 1
    assert snapshot["error_count"] == 1
    assert snapshot["last_error"] == "decode error"
    assert snapshot["last_segment_time"] == 150.0


def test_fatal_event_returns_text() -> None:
    metrics = SessionMetrics()
    collector = MetricsCollector()
    event = OutputEvent(EventKind.ERROR, "Connection refused", fatal=True)

    assert collector.apply("cam", metrics, event) == "Connection refused"
    assert metrics.error_count == 1


def test_error_threshold_promotes_to_fatal() -> None:
    metrics = SessionMetrics()
    collector = MetricsCollector(fatal_error_threshold=3)
    results = [
        collector.apply("cam", metrics, OutputEvent(EventKind.ERROR, f"error {index}"))
        for index in range(4)
    ]

    assert results[:3] == [None, None, None]
    assert results[3] == "error 3"


def test_concurrent_updates_are_not_lost() -> None:
    metrics = SessionMetrics()

    def _record() -> None:
        for _ in range(1000):
            metrics.record_segment()
            metrics.record_error("x")

    threads = [threading.Thread(target=_record) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert metrics.segment_count == 4000
    assert metrics.error_count == 4000


def test_final_summary_reports_uptime() -> None:
    metrics = SessionMetrics(started_at=10.0)
    metrics.record_reconnect()

    summary = metrics.final_summary(now=25.5)

    assert summary == {"uptime": 15.5, "reconnects": 1, "errors": 0, "segments": 0}
