"""Serve command for procmux CLI.

Runs the server in the foreground until SIGINT/SIGTERM.
"""

from __future__ import annotations

__all__ = ["serve"]

import asyncio
from pathlib import Path

import click

from procmux.config import load_config, load_config_strict
from procmux.exceptions import ConfigurationError
from procmux.server import run_server

from ..styling import style_dim, style_success


@click.command()
@click.option("--host", help="Interface to bind (default from config: 127.0.0.1)")
@click.option("--port", type=click.IntRange(1024, 65535), help="Port to listen on (default from config: 8765)")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Config file to use instead of the default location",
)
def serve(host: str | None, port: int | None, config_path: Path | None) -> None:
    """Start the procmux server.

    An explicit --config must exist and be valid; the default config file
    falls back to built-in defaults when missing or invalid.

    Examples:
        procmux serve
        procmux serve --port 9000
        procmux serve --config ./procmux.json
    """
    try:
        config = load_config_strict(config_path) if config_path else load_config()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    server_updates: dict[str, object] = {}
    if host:
        server_updates["host"] = host
    if port is not None:
        server_updates["port"] = port
    if server_updates:
        config = config.model_copy(update={"server": config.server.model_copy(update=server_updates)})

    click.echo(style_success(f"Starting procmux on http://{config.server.host}:{config.server.port}"))
    click.echo(style_dim("Press Ctrl+C to stop."))
    try:
        asyncio.run(run_server(config))
    except RuntimeError as e:
        raise click.ClickException(str(e)) from e
