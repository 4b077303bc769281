"""Bounded-wait readiness detection for freshly started sessions."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import EngineSpawnFailure, FatalStreamError, ReadinessTimeout
from .session import StartupSignals

LOGGER = logging.getLogger(__name__)

MANIFEST_MARKER = "#EXTM3U"
CHUNK_SUFFIX = ".ts"


@dataclass(frozen=True)
class ManifestInfo:
    """What the manifest on disk currently says."""

    exists: bool
    valid: bool
    segment_count: int

    @property
    def ready(self) -> bool:
        return self.exists and self.valid and self.segment_count > 0


def count_chunk_references(content: str, *, chunk_suffix: str = CHUNK_SUFFIX) -> int:
    count = 0
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if chunk_suffix in line:
            count += 1
    return count


def inspect_manifest(path: Path, *, chunk_suffix: str = CHUNK_SUFFIX) -> ManifestInfo:
    """Read ``path`` and report existence, structural validity and chunk count."""

    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return ManifestInfo(exists=False, valid=False, segment_count=0)
    except OSError as exc:
        LOGGER.debug("Unable to read manifest %s: %s", path, exc)
        return ManifestInfo(exists=path.exists(), valid=False, segment_count=0)
    if MANIFEST_MARKER not in content:
        return ManifestInfo(exists=True, valid=False, segment_count=0)
    return ManifestInfo(
        exists=True,
        valid=True,
        segment_count=count_chunk_references(content, chunk_suffix=chunk_suffix),
    )


def count_chunk_files(directory: Path, *, chunk_suffix: str = CHUNK_SUFFIX) -> int:
    try:
        return sum(1 for entry in directory.iterdir() if entry.is_file() and entry.name.endswith(chunk_suffix))
    except OSError:
        return 0


class ReadinessDetector:
    """Poll a manifest until it references a chunk, a fatal signal fires, or time runs out."""

    def __init__(
        self,
        *,
        poll_interval: float = 1.5,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._poll_interval = max(0.01, float(poll_interval))
        self._timeout = max(0.0, float(timeout))
        self._clock = clock

    @property
    def timeout(self) -> float:
        return self._timeout

    def wait_ready(
        self,
        manifest_path: Path,
        signals: Optional[StartupSignals] = None,
        timeout: Optional[float] = None,
    ) -> ManifestInfo:
        """Block the caller until the manifest is ready.

        Raises :class:`FatalStreamError` as soon as output classification flags a
        fatal condition, :class:`EngineSpawnFailure` when the engine exits before
        producing a usable manifest, and :class:`ReadinessTimeout` once the bound
        elapses.
        """

        signals = signals or StartupSignals()
        bound = self._timeout if timeout is None else max(0.0, float(timeout))
        deadline = self._clock() + bound

        while True:
            if signals.fatal.is_set():
                raise FatalStreamError(signals.fatal_reason or "Stream source might be unavailable")

            info = inspect_manifest(manifest_path)
            if info.ready:
                return info

            if signals.exited.is_set():
                # The engine may have written its final manifest on the way out.
                if signals.fatal.is_set():
                    continue
                raise EngineSpawnFailure(
                    f"Engine exited during startup (code {signals.returncode})"
                )

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ReadinessTimeout(
                    f"Timeout waiting for manifest {manifest_path.name} after {bound:.1f}s"
                )
            signals.wait(min(self._poll_interval, remaining))


__all__ = [
    "CHUNK_SUFFIX",
    "MANIFEST_MARKER",
    "ManifestInfo",
    "ReadinessDetector",
    "count_chunk_files",
    "count_chunk_references",
    "inspect_manifest",
]
