"""HTTP management API and WebSocket entry point."""

from .app import create_app

__all__ = ["create_app"]
