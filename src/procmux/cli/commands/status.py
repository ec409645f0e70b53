"""Status command for procmux CLI.

Shows runtime status of a running server (uses the API).
"""

from __future__ import annotations

__all__ = ["status"]

import json
from typing import Any

import click

from procmux.cli.api_client import api_request
from procmux.config import load_config

from ..styling import style_dim, style_header, style_status

# Time conversion constants
SECONDS_PER_DAY = 86400
SECONDS_PER_HOUR = 3600
SECONDS_PER_MINUTE = 60


def server_base_url(host: str | None, port: int | None) -> str:
    """Base URL from explicit options, falling back to the config file."""
    config = load_config()
    return f"http://{host or config.server.host}:{port or config.server.port}"


def format_uptime(uptime_secs: float) -> str:
    if uptime_secs >= SECONDS_PER_DAY:
        return f"{uptime_secs / SECONDS_PER_DAY:.1f} days"
    if uptime_secs >= SECONDS_PER_HOUR:
        return f"{uptime_secs / SECONDS_PER_HOUR:.1f} hours"
    if uptime_secs >= SECONDS_PER_MINUTE:
        return f"{uptime_secs / SECONDS_PER_MINUTE:.1f} minutes"
    return f"{uptime_secs:.0f} seconds"


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--host", help="Server host (default from config)")
@click.option("--port", type=int, help="Server port (default from config)")
def status(as_json: bool, host: str | None, port: int | None) -> None:
    """Show server runtime status.

    Examples:
        procmux status
        procmux status --port 9000 --json
    """
    response = api_request("GET", "/api/status", base_url=server_base_url(host, port))
    data = response if isinstance(response, dict) else {}

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return
    _print_status_formatted(data)


def _print_status_formatted(data: dict[str, Any]) -> None:
    click.echo(click.style("procmux: Running", fg="green", bold=True))
    click.echo(f"  PID: {data.get('pid')}")
    click.echo(f"  Uptime: {format_uptime(data.get('uptime_seconds', 0))}")
    click.echo()

    click.echo(style_header("Connections"))
    connections = data.get("connections", {})
    if connections:
        for path, count in connections.items():
            click.echo(f"  {path:10} {count}")
    else:
        click.echo(style_dim("  No routes registered."))
    click.echo()

    click.echo(style_header("Processes"))
    click.echo(f"  Shells: {data.get('shells', 0)}")
    click.echo(f"  Assistant sessions: {data.get('assistant_sessions', 0)}")
    click.echo()

    click.echo(style_header("Dev servers"))
    dev_servers = data.get("dev_servers", [])
    if not dev_servers:
        click.echo(style_dim("  None tracked."))
        return
    for server in dev_servers:
        line = f"  {server.get('project_path')} [{server.get('script')}] {style_status(server.get('status', ''))}"
        if server.get("url"):
            line += f" {server['url']}"
        click.echo(line)
        if server.get("error"):
            click.echo(style_dim(f"    {server['error']}"))
