"""Pattern classifiers that turn free-text engine output into tagged events.

FFmpeg exposes no structured health API, only diagnostic text on two channels.
All substring matching lives here so the readiness and metrics layers only see
:class:`OutputEvent` values. Bump :data:`CLASSIFIER_VERSION` whenever a pattern
list changes.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Tuple

CLASSIFIER_VERSION = 1

STDOUT = "stdout"
STDERR = "stderr"

STDOUT_READY_MARKERS = (
    "muxer does not support non seekable output",
    "Opening '",
    "hls muxer",
)
STDERR_READY_MARKERS = (
    "Opening",
    "Stream #0",
    "Output #0",
    "hls @",
)
RECONNECT_MARKERS = ("reconnect",)
ERROR_MARKERS = ("error", "failed", "Cannot")
FATAL_MARKERS = (
    "Connection refused",
    "No route to host",
    "Invalid data found",
    "Server returned 404 Not Found",
    "HTTP error 404",
)
CHUNK_MARKERS = (".ts", "segment")


class EventKind(enum.Enum):
    READY = "ready"
    RECONNECT = "reconnect"
    ERROR = "error"
    CHUNK = "chunk"


@dataclass(frozen=True)
class OutputEvent:
    """One classified observation extracted from an engine output line."""

    kind: EventKind
    text: str = ""
    fatal: bool = False


def _contains_any(line: str, markers: Tuple[str, ...]) -> bool:
    return any(marker in line for marker in markers)


def classify_line(line: str, channel: str = STDERR) -> Tuple[OutputEvent, ...]:
    """Return the events carried by ``line`` on ``channel``.

    A single line may carry several events (an HLS muxer line that opens a new
    ``.ts`` chunk is both a ready marker and a chunk marker). Lines that match
    nothing yield an empty tuple.
    """

    text = line.strip()
    if not text:
        return ()

    if channel == STDOUT:
        if _contains_any(text, STDOUT_READY_MARKERS):
            return (OutputEvent(EventKind.READY, text),)
        return ()

    events = []
    if _contains_any(text, STDERR_READY_MARKERS):
        events.append(OutputEvent(EventKind.READY, text))
    if _contains_any(text, RECONNECT_MARKERS):
        events.append(OutputEvent(EventKind.RECONNECT, text))
    fatal = _contains_any(text, FATAL_MARKERS)
    if fatal or _contains_any(text, ERROR_MARKERS):
        events.append(OutputEvent(EventKind.ERROR, text, fatal=fatal))
    if _contains_any(text, CHUNK_MARKERS):
        events.append(OutputEvent(EventKind.CHUNK, text))
    return tuple(events)


__all__ = [
    "CLASSIFIER_VERSION",
    "EventKind",
    "OutputEvent",
    "STDERR",
    "STDOUT",
    "classify_line",
]
