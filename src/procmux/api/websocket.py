"""WebSocket transport adapter.

Adapts a Starlette WebSocket to the connection Transport protocol: every
way the peer can disappear surfaces as ConnectionClosedError.
"""

from __future__ import annotations

__all__ = ["WebSocketTransport", "handshake_from_websocket"]

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from procmux.connection import Handshake
from procmux.exceptions import ConnectionClosedError


def handshake_from_websocket(websocket: WebSocket) -> Handshake:
    return Handshake(
        path=websocket.url.path,
        query=dict(websocket.query_params),
        headers={name.lower(): value for name, value in websocket.headers.items()},
    )


class WebSocketTransport:
    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    async def accept(self) -> None:
        await self._websocket.accept()

    async def receive_text(self) -> str:
        if self._websocket.client_state is not WebSocketState.CONNECTED:
            raise ConnectionClosedError()
        try:
            message = await self._websocket.receive()
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise ConnectionClosedError(getattr(e, "code", None)) from e
        if message["type"] == "websocket.disconnect":
            raise ConnectionClosedError(message.get("code"))
        text = message.get("text")
        if text is not None:
            return str(text)
        # Binary frames carry UTF-8 text from some clients
        return bytes(message.get("bytes") or b"").decode("utf-8", errors="replace")

    async def send_text(self, text: str) -> None:
        try:
            await self._websocket.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise ConnectionClosedError(getattr(e, "code", None)) from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._websocket.application_state is WebSocketState.DISCONNECTED:
            return
        try:
            await self._websocket.close(code=code, reason=reason)
        except (RuntimeError, OSError):
            # Peer already gone
            return
