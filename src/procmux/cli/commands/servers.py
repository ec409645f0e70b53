"""Servers command group for procmux CLI.

Controls project dev servers on a running procmux (uses the API).
"""

from __future__ import annotations

__all__ = ["servers"]

import json

import click

from procmux.cli.api_client import api_request

from ..styling import style_dim, style_error, style_label, style_status, style_success
from .status import server_base_url

_host_option = click.option("--host", help="Server host (default from config)")
_port_option = click.option("--port", type=int, help="Server port (default from config)")


def _echo_status(data: dict[str, object]) -> None:
    click.echo(f"{style_label('Project')} {data.get('project_path')}")
    click.echo(f"{style_label('Status')} {style_status(str(data.get('status', '')))}")
    if data.get("script"):
        click.echo(f"{style_label('Script')} {data['script']}")
    if data.get("url"):
        click.echo(f"{style_label('URL')} {data['url']}")
    if data.get("error"):
        click.echo(f"{style_label('Error')} {style_error(str(data['error']))}")


@click.group()
def servers() -> None:
    """Project dev-server commands."""
    pass


@servers.command("status")
@click.argument("project_path")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@_host_option
@_port_option
def servers_status(project_path: str, as_json: bool, host: str | None, port: int | None) -> None:
    """Show a project's dev-server status."""
    data = api_request(
        "GET", "/api/servers", base_url=server_base_url(host, port), params={"project_path": project_path}
    )
    if as_json:
        click.echo(json.dumps(data, indent=2))
    elif isinstance(data, dict):
        _echo_status(data)


@servers.command("scripts")
@click.argument("project_path")
@_host_option
@_port_option
def servers_scripts(project_path: str, host: str | None, port: int | None) -> None:
    """List scripts runnable in a project."""
    data = api_request(
        "GET", "/api/servers/scripts", base_url=server_base_url(host, port), params={"project_path": project_path}
    )
    scripts = data.get("scripts", []) if isinstance(data, dict) else []
    if not scripts:
        click.echo(style_dim("No scripts found."))
        return
    for name in scripts:
        click.echo(f"  {name}")


@servers.command("start")
@click.argument("project_path")
@click.argument("script")
@_host_option
@_port_option
def servers_start(project_path: str, script: str, host: str | None, port: int | None) -> None:
    """Start SCRIPT in a project (no-op if already running)."""
    data = api_request(
        "POST",
        "/api/servers/start",
        base_url=server_base_url(host, port),
        json_data={"project_path": project_path, "script": script},
    )
    click.echo(style_success(f"Dev server '{script}' started"))
    status = data.get("status") if isinstance(data, dict) else None
    if isinstance(status, dict):
        _echo_status(status)


@servers.command("stop")
@click.argument("project_path")
@_host_option
@_port_option
def servers_stop(project_path: str, host: str | None, port: int | None) -> None:
    """Stop a project's dev server."""
    data = api_request(
        "POST",
        "/api/servers/stop",
        base_url=server_base_url(host, port),
        json_data={"project_path": project_path},
    )
    if isinstance(data, dict) and not data.get("success"):
        raise click.ClickException(str(data.get("error") or "stop failed"))
    click.echo(style_success("Dev server stopped"))
