"""Duplex client connections.

A Connection wraps one accepted transport (a WebSocket in production, an
in-memory fake in tests). Outbound envelopes go through a bounded queue
drained by a single sender task, which keeps sends ordered and lets
broadcasts drop instead of block when a client falls behind.
"""

from __future__ import annotations

__all__ = [
    "Connection",
    "ConnectionContext",
    "Handshake",
    "Transport",
]

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from procmux.constants import APP_NAME, DEFAULT_OUTBOUND_QUEUE_SIZE
from procmux.exceptions import ConnectionClosedError
from procmux.protocol.codec import encode_envelope
from procmux.protocol.envelope import Envelope

_logger = logging.getLogger(f"{APP_NAME}.connection")

# How long close() waits for queued envelopes to flush
_FLUSH_TIMEOUT_SECONDS = 5.0


class Transport(Protocol):
    """Minimal duplex text transport.

    receive_text() and send_text() raise ConnectionClosedError once the peer
    has gone away.
    """

    async def accept(self) -> None: ...

    async def receive_text(self) -> str: ...

    async def send_text(self, text: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


@dataclass(frozen=True)
class Handshake:
    """Raw metadata from the connection request.

    Attributes:
        path: Routing path, e.g. "/shell".
        query: Query-string parameters.
        headers: Request headers (lower-cased names).
    """

    path: str
    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)

    def param(self, name: str, default: str | None = None) -> str | None:
        """Get a non-empty query parameter."""
        value = self.query.get(name)
        return value if value else default

    def int_param(self, name: str, default: int) -> int:
        """Get a positive integer query parameter, falling back on bad input."""
        value = self.query.get(name)
        try:
            parsed = int(value) if value is not None else default
        except ValueError:
            return default
        return parsed if parsed > 0 else default


@dataclass(frozen=True)
class ConnectionContext:
    """Per-connection correlation data, created by the router."""

    connection_id: str
    path: str
    connected_at: datetime

    @classmethod
    def new(cls, path: str) -> ConnectionContext:
        return cls(
            connection_id=f"conn_{uuid.uuid4().hex[:12]}",
            path=path,
            connected_at=datetime.now(timezone.utc),
        )


class Connection:
    """An accepted client connection bound to one routing path."""

    def __init__(
        self,
        transport: Transport,
        context: ConnectionContext,
        queue_size: int = DEFAULT_OUTBOUND_QUEUE_SIZE,
    ) -> None:
        self.transport = transport
        self.context = context
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self._sender: asyncio.Task[None] | None = None
        self._alive = True
        self._closing = False

    def __repr__(self) -> str:
        return f"<Connection {self.id} path={self.path} alive={self._alive}>"

    @property
    def id(self) -> str:
        return self.context.connection_id

    @property
    def path(self) -> str:
        return self.context.path

    @property
    def alive(self) -> bool:
        return self._alive

    def start(self) -> None:
        """Start the sender task."""
        if self._sender is None:
            self._sender = asyncio.create_task(self._send_loop(), name=f"send-{self.id}")

    async def send(self, envelope: Envelope) -> bool:
        """Queue an envelope for this connection, waiting for queue space.

        Used for traffic owned by this connection (its shell output, its
        assistant run), where dropping would corrupt the stream.

        Returns:
            False if the connection is already gone.
        """
        if not self._alive or self._closing:
            return False
        await self._queue.put(encode_envelope(envelope))
        return self._alive

    def offer(self, envelope: Envelope) -> bool:
        """Queue an envelope without waiting; drops it if the queue is full."""
        if not self._alive or self._closing:
            return False
        try:
            self._queue.put_nowait(encode_envelope(envelope))
        except asyncio.QueueFull:
            _logger.warning(
                {
                    "event": "outbound_queue_full",
                    "message": f"Outbound queue full for {self.id}, dropping '{envelope.type}'",
                    "connection_id": self.id,
                    "path": self.path,
                }
            )
            return False
        return True

    async def receive(self) -> str | None:
        """Receive the next text frame, or None once the peer has gone."""
        if not self._alive:
            return None
        try:
            return await self.transport.receive_text()
        except ConnectionClosedError:
            self._mark_dead()
            return None

    async def frames(self) -> AsyncIterator[str]:
        """Iterate inbound text frames until the peer disconnects."""
        while True:
            frame = await self.receive()
            if frame is None:
                return
            yield frame

    async def _send_loop(self) -> None:
        while True:
            text = await self._queue.get()
            if text is None:
                return
            try:
                await self.transport.send_text(text)
            except ConnectionClosedError:
                self._mark_dead()
                return

    def _mark_dead(self) -> None:
        if not self._alive:
            return
        self._alive = False
        # Wake producers blocked in send() on a full queue
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Flush queued envelopes, then close the transport. Idempotent."""
        if self._closing:
            return
        self._closing = True

        if self._sender is not None:
            if self._alive:
                try:
                    self._queue.put_nowait(None)
                except asyncio.QueueFull:
                    self._sender.cancel()
            else:
                self._sender.cancel()
            try:
                await asyncio.wait_for(self._sender, timeout=_FLUSH_TIMEOUT_SECONDS)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                pass

        was_alive = self._alive
        self._mark_dead()
        if was_alive:
            try:
                await self.transport.close(code=code, reason=reason)
            except ConnectionClosedError:
                pass
