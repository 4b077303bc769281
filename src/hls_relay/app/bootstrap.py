"""Bootstrap helpers for the relay Flask application."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

from flask import Flask, Response, abort, send_from_directory

from ..config import build_default_config
from ..logging_config import configure_logging

MANIFEST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
CHUNK_CONTENT_TYPE = "video/mp2t"
CHUNK_MAX_AGE = 3600


def init_logging() -> None:
    """Configure root logging for the relay service."""

    configure_logging("hls_relay")


def load_configuration(app: Flask, overrides: Optional[Mapping[str, Any]] = None) -> None:
    """Populate the default configuration values on the Flask app."""

    app.config.from_mapping(build_default_config())
    if overrides:
        app.config.from_mapping(dict(overrides))


def configure_media_routes(app: Flask) -> None:
    """Serve session manifests and chunks from the output root under ``/hls``.

    Manifests are never cached; chunks are immutable once written and carry a
    long cache lifetime.
    """

    output_root = Path(app.config["HLS_RELAY_OUTPUT_DIR"]).expanduser().resolve()
    output_root.mkdir(parents=True, exist_ok=True)

    def _resolve_media_path(fragment: str) -> Path:
        target = (output_root / fragment).expanduser().resolve()
        try:
            target.relative_to(output_root)
        except ValueError:
            abort(400, description="Invalid media path")
        return target

    @app.route("/hls/<path:requested_path>", methods=["GET", "HEAD"])
    def hls_media(requested_path: str) -> Response:
        target = _resolve_media_path(requested_path)
        if target.is_dir():
            abort(403, description="Directories are not browsable")
        if not target.is_file():
            abort(404)
        relative_path = target.relative_to(output_root).as_posix()
        suffix = target.suffix.lower()
        if suffix == ".m3u8":
            response = send_from_directory(
                str(output_root),
                relative_path,
                mimetype=MANIFEST_CONTENT_TYPE,
                conditional=False,
                max_age=0,
            )
            response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
            return response
        if suffix == ".ts":
            response = send_from_directory(
                str(output_root),
                relative_path,
                mimetype=CHUNK_CONTENT_TYPE,
                conditional=True,
                max_age=CHUNK_MAX_AGE,
            )
            response.headers["Cache-Control"] = f"public, max-age={CHUNK_MAX_AGE}"
            response.headers["Accept-Ranges"] = "bytes"
            return response
        abort(404)


__all__ = [
    "configure_media_routes",
    "init_logging",
    "load_configuration",
]
