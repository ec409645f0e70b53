"""Command-line interface for procmux.

Provides commands for running the server, inspecting a running server and
managing configuration.
"""

from .main import cli, main

__all__ = ["cli", "main"]
