"""Build the FFmpeg command line for an HLS relay session."""
from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Tuple

LOGGER = logging.getLogger(__name__)

HLS_FLAGS = "delete_segments+append_list+split_by_time+independent_segments"


def _split(value: object) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(shlex.split(value))
    if isinstance(value, Sequence):
        return tuple(str(item) for item in value)
    return (str(value),)


@dataclass(frozen=True)
class EngineCommand:
    """Deterministic engine invocation derived from configuration.

    Input and output flag groups are treated as opaque payloads; the only
    contract relied upon is that the engine writes ``manifest_name`` and
    numbered chunk files into the session's output directory.
    """

    binary: str = "ffmpeg"
    segment_duration: int = 2
    retained_segments: int = 10
    manifest_name: str = "playlist.m3u8"
    segment_pattern: str = "segment_%05d.ts"
    input_args: Tuple[str, ...] = field(default_factory=tuple)
    output_args: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_config(cls, config) -> "EngineCommand":
        return cls(
            binary=str(config.get("HLS_RELAY_FFMPEG_BINARY") or "ffmpeg"),
            segment_duration=int(config.get("HLS_RELAY_SEGMENT_DURATION", 2) or 2),
            retained_segments=int(config.get("HLS_RELAY_MAX_SEGMENTS", 10) or 10),
            manifest_name=str(config.get("HLS_RELAY_MANIFEST_NAME") or "playlist.m3u8"),
            input_args=_split(config.get("HLS_RELAY_ENGINE_INPUT_ARGS")),
            output_args=_split(config.get("HLS_RELAY_ENGINE_OUTPUT_ARGS")),
        )

    def build(self, source_locator: str, output_dir: Path) -> List[str]:
        """Return the argument vector for ``source_locator`` writing into ``output_dir``."""

        cmd: List[str] = [self.binary]
        cmd.extend(self.input_args)
        cmd.extend(["-i", source_locator])
        cmd.extend(self.output_args)
        cmd.extend([
            "-f", "hls",
            "-hls_time", str(self.segment_duration),
            "-hls_list_size", str(self.retained_segments),
            "-hls_flags", HLS_FLAGS,
            "-hls_allow_cache", "0",
            "-hls_segment_type", "mpegts",
            "-hls_segment_filename", str(output_dir / self.segment_pattern),
            "-y",
            str(output_dir / self.manifest_name),
        ])
        return cmd

    def dry_run(self, source_locator: str, output_dir: Path) -> str:
        """Return a shell-escaped command string without executing it."""

        return shlex.join(self.build(source_locator, output_dir))

    def probe(self, *, timeout: float = 5.0) -> bool:
        """Return whether ``<binary> -version`` exits cleanly within ``timeout``."""

        try:
            result = subprocess.run(
                [self.binary, "-version"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError:
            LOGGER.warning("Engine binary '%s' not found", self.binary)
            return False
        except subprocess.TimeoutExpired:
            LOGGER.warning("Engine binary '%s' did not answer -version within %.1fs", self.binary, timeout)
            return False
        except OSError as exc:
            LOGGER.warning("Unable to probe engine binary '%s': %s", self.binary, exc)
            return False
        return result.returncode == 0


__all__ = ["EngineCommand", "HLS_FLAGS"]
