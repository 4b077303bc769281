"""Engine layer for the HLS relay supervisor."""
from __future__ import annotations

from .classifier import CLASSIFIER_VERSION, EventKind, OutputEvent, classify_line
from .command import EngineCommand
from .errors import (
    CapacityExceeded,
    CleanupFailure,
    EngineSpawnFailure,
    FatalStreamError,
    InvalidInput,
    ReadinessTimeout,
    RelayError,
)
from .heartbeat import HeartbeatLoop
from .lifecycle import EngineProcess, ProcessLifecycleManager
from .metrics import MetricsCollector, SessionMetrics
from .readiness import ManifestInfo, ReadinessDetector, inspect_manifest
from .registry import SessionRegistry
from .session import ClientInfo, Session, SessionState, StartupSignals
from .status import StatusBroadcaster
from .stop_strategy import StopStrategy, TerminationResult
from .supervisor import StartOutcome, StartResult, StopResult, Supervisor
from .sweeper import ReconciliationSweeper, SweepReport
from .validation import is_valid_source_locator, normalize_session_id, validate_source_locator

__all__ = [
    "CLASSIFIER_VERSION",
    "CapacityExceeded",
    "CleanupFailure",
    "ClientInfo",
    "EngineCommand",
    "EngineProcess",
    "EngineSpawnFailure",
    "EventKind",
    "FatalStreamError",
    "HeartbeatLoop",
    "InvalidInput",
    "ManifestInfo",
    "MetricsCollector",
    "OutputEvent",
    "ProcessLifecycleManager",
    "ReadinessDetector",
    "ReadinessTimeout",
    "ReconciliationSweeper",
    "RelayError",
    "Session",
    "SessionMetrics",
    "SessionRegistry",
    "SessionState",
    "StartOutcome",
    "StartResult",
    "StartupSignals",
    "StatusBroadcaster",
    "StopResult",
    "StopStrategy",
    "SweepReport",
    "Supervisor",
    "TerminationResult",
    "classify_line",
    "inspect_manifest",
    "is_valid_source_locator",
    "normalize_session_id",
    "validate_source_locator",
]
