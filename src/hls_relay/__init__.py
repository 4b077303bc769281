"""Root package for the HLS relay service."""
from __future__ import annotations

from .app import create_app
from .engine import Supervisor, StatusBroadcaster
from .routes import api_bp

__all__ = [
    "create_app",
    "api_bp",
    "Supervisor",
    "StatusBroadcaster",
]
