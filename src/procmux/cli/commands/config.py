"""Config command group for procmux CLI."""

from __future__ import annotations

__all__ = ["config"]

import json

import click

from procmux.config import get_config_path, get_system_log_path, load_config

from ..styling import style_dim, style_header


def _default_marker() -> str:
    return click.style(" (default)", dim=True)


@click.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def config_show(as_json: bool) -> None:
    """Display current configuration.

    Values come from the config file when it exists, built-in defaults
    otherwise.
    """
    config_file_path = get_config_path()
    loaded_config = load_config(config_file_path)

    if as_json:
        config_dict = loaded_config.model_dump(mode="json")
        config_dict["_computed"] = {
            "config_file": str(config_file_path),
            "system_log": str(get_system_log_path(loaded_config)),
        }
        click.echo(json.dumps(config_dict, indent=2))
        return

    marker = "" if config_file_path.exists() else _default_marker()
    click.echo(f"\nprocmux configuration{marker}:\n")

    click.echo(style_header("Server"))
    click.echo(f"  host: {loaded_config.server.host}")
    click.echo(f"  port: {loaded_config.server.port}")
    click.echo(f"  outbound_queue_size: {loaded_config.server.outbound_queue_size}")
    click.echo()

    click.echo(style_header("Logging"))
    click.echo(f"  log_dir: {loaded_config.logging.log_dir}")
    click.echo(f"  log_level: {loaded_config.logging.log_level}")
    click.echo(f"  system log: {get_system_log_path(loaded_config)}")
    click.echo()

    click.echo(style_header("Supervisor"))
    click.echo(f"  grace_period_seconds: {loaded_config.supervisor.grace_period_seconds}")
    click.echo(f"  read_chunk_size: {loaded_config.supervisor.read_chunk_size}")
    click.echo()

    click.echo(style_header("Shell"))
    click.echo(f"  command: {loaded_config.shell.command or style_dim('$SHELL')}")
    click.echo(f"  size: {loaded_config.shell.default_cols}x{loaded_config.shell.default_rows}")
    click.echo(f"  term: {loaded_config.shell.term}")
    click.echo()

    click.echo(style_header("Assistant"))
    click.echo(f"  executable: {loaded_config.assistant.executable}")
    click.echo(f"  default_model: {loaded_config.assistant.default_model}")
    click.echo(f"  disconnect_policy: {loaded_config.assistant.disconnect_policy}")
    click.echo(f"  history_dir: {loaded_config.assistant.history_dir or style_dim('(disabled)')}")
    click.echo()

    click.echo(style_header("Dev servers"))
    click.echo(f"  runner: {' '.join(loaded_config.devserver.runner)}")
    click.echo(f"  readiness_timeout_seconds: {loaded_config.devserver.readiness_timeout_seconds}")
    click.echo(f"  projects_root: {loaded_config.devserver.projects_root or style_dim('(absolute paths only)')}")


@config.command("path")
def config_path() -> None:
    """Show the config file location."""
    path = get_config_path()
    click.echo(str(path))
    if not path.exists():
        click.echo(style_dim("(file does not exist, defaults in use)"), err=True)
