"""CLI output styling utilities.

- Cyan bold for section headers and labels
- Green for success messages (with checkmark)
- Red for error messages (with cross)
- Dim for neutral/empty state messages
"""

from __future__ import annotations

__all__ = [
    "style_dim",
    "style_error",
    "style_header",
    "style_label",
    "style_status",
    "style_success",
]

import click

_STATUS_COLORS = {
    "running": "green",
    "starting": "yellow",
    "stopping": "yellow",
    "stopped": None,
    "error": "red",
}


def style_header(title: str) -> str:
    """Style a section header with dashes.

    Example:
        >>> click.echo(style_header("Server"))
        --- Server ---
    """
    return click.style(f"--- {title} ---", fg="cyan", bold=True)


def style_label(label: str) -> str:
    """Style a label (colon appended)."""
    return click.style(f"{label}:", fg="cyan", bold=True)


def style_success(message: str) -> str:
    return click.style(f"✓ {message}", fg="green")


def style_error(message: str) -> str:
    return click.style(f"✗ {message}", fg="red")


def style_dim(message: str) -> str:
    return click.style(message, dim=True)


def style_status(status: str) -> str:
    """Color a dev-server status word by lifecycle state."""
    color = _STATUS_COLORS.get(status)
    return click.style(status, fg=color) if color else style_dim(status)
