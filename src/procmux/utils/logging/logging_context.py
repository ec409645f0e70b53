"""Context variables for connection correlation.

Each routed connection runs its handler inside its own asyncio task, so
ContextVars set at the start of the handler are scoped to that connection and
every task it spawns (asyncio copies the context on create_task). Log records
emitted anywhere below the handler pick up the correlation id through
ContextFilter without it being threaded through every call.

The explicit ConnectionContext object remains the source of truth; these
variables only mirror it for logging.
"""

from __future__ import annotations

__all__ = [
    "ContextFilter",
    "bind_connection_context",
    "connection_id_var",
    "get_connection_id",
    "route_var",
]

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

connection_id_var: ContextVar[str | None] = ContextVar("connection_id", default=None)
"""Correlation id of the connection whose handler is running."""

route_var: ContextVar[str | None] = ContextVar("route", default=None)
"""Routing path the connection arrived on."""


def get_connection_id() -> str | None:
    """Get the correlation id bound to the current task, if any."""
    return connection_id_var.get()


@contextmanager
def bind_connection_context(connection_id: str, route: str) -> Iterator[None]:
    """Bind correlation fields for the duration of a connection handler."""
    id_token = connection_id_var.set(connection_id)
    route_token = route_var.set(route)
    try:
        yield
    finally:
        route_var.reset(route_token)
        connection_id_var.reset(id_token)


class ContextFilter(logging.Filter):
    """Attach the bound correlation fields to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.connection_id = connection_id_var.get()
        record.route = route_var.get()
        return True
