"""Main CLI entry point for procmux.

Defines the CLI group and registers all subcommands.

Commands:
    config   - Configuration management (show, path)
    serve    - Run the server in the foreground
    servers  - Project dev servers on a running server (status, scripts, start, stop)
    status   - Show runtime status of a running server

Subcommand help:
    procmux COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli", "main"]

import sys

import click

from procmux import __version__

from .commands.config import config
from .commands.serve import serve
from .commands.servers import servers
from .commands.status import status


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """procmux: process multiplexer for shells, assistant sessions and dev servers."""
    if version:
        click.echo(f"procmux {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(config)
cli.add_command(serve)
cli.add_command(servers)
cli.add_command(status)


def main() -> None:
    """CLI entry point."""
    cli()
