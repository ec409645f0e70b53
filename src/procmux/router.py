"""Connection router.

Maps a routing path ("/shell", "/ws", "/servers") to the handler that owns
connections on it. The router never looks at message bodies: it accepts the
transport, attaches a correlation context, hands the connection to the
handler, and closes it when the handler returns or fails.
"""

from __future__ import annotations

__all__ = ["ConnectionHandler", "ConnectionRouter"]

import logging
from collections import Counter
from collections.abc import Awaitable, Callable

from procmux.connection import Connection, ConnectionContext, Handshake, Transport
from procmux.constants import (
    APP_NAME,
    DEFAULT_OUTBOUND_QUEUE_SIZE,
    HANDLER_ERROR_CLOSE_CODE,
    UNKNOWN_ROUTE_CLOSE_CODE,
)
from procmux.exceptions import UnknownRouteError
from procmux.models import SystemEvent
from procmux.telemetry.system_logger import log_event
from procmux.utils.logging.logging_context import bind_connection_context

_logger = logging.getLogger(f"{APP_NAME}.router")

ConnectionHandler = Callable[[Connection, Handshake], Awaitable[None]]


class ConnectionRouter:
    """Dispatches inbound connections to per-path handlers."""

    def __init__(self, queue_size: int = DEFAULT_OUTBOUND_QUEUE_SIZE) -> None:
        self._handlers: dict[str, ConnectionHandler] = {}
        self._active: Counter[str] = Counter()
        self._queue_size = queue_size

    def register(self, path: str, handler: ConnectionHandler) -> None:
        """Register the handler for a routing path (replacing any previous one)."""
        self._handlers[path] = handler

    @property
    def paths(self) -> list[str]:
        return sorted(self._handlers)

    def active_connections(self) -> dict[str, int]:
        """Active connection count per registered path."""
        return {path: self._active.get(path, 0) for path in self.paths}

    async def route(self, transport: Transport, handshake: Handshake) -> None:
        """Accept a connection and run its handler to completion.

        Raises:
            UnknownRouteError: No handler for handshake.path. The transport
                has already been closed.
        """
        path = handshake.path
        handler = self._handlers.get(path)
        if handler is None:
            log_event(
                logging.WARNING,
                SystemEvent(
                    event="unknown_route",
                    message=f"Rejected connection for unknown path '{path}'",
                    path=path,
                ),
                _logger,
            )
            await transport.close(code=UNKNOWN_ROUTE_CLOSE_CODE, reason="unknown path")
            raise UnknownRouteError(path)

        context = ConnectionContext.new(path)
        with bind_connection_context(context.connection_id, path):
            await transport.accept()
            connection = Connection(transport, context, self._queue_size)
            connection.start()
            self._active[path] += 1
            log_event(
                logging.INFO,
                SystemEvent(
                    event="connection_opened",
                    message=f"Connection {context.connection_id} accepted on {path}",
                    connection_id=context.connection_id,
                    path=path,
                ),
                _logger,
            )

            close_code = 1000
            try:
                await handler(connection, handshake)
            except Exception as e:
                close_code = HANDLER_ERROR_CLOSE_CODE
                _logger.error(
                    {
                        "event": "handler_failed",
                        "message": f"Handler for {path} failed: {e}",
                        "connection_id": context.connection_id,
                        "path": path,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    },
                    exc_info=True,
                )
            finally:
                self._active[path] -= 1
                await connection.close(code=close_code)
                log_event(
                    logging.INFO,
                    SystemEvent(
                        event="connection_closed",
                        message=f"Connection {context.connection_id} on {path} closed",
                        connection_id=context.connection_id,
                        path=path,
                    ),
                    _logger,
                )
