"""Dev-server commands and the "/servers" subscription route.

``server:*`` messages are accepted on the chat route and on "/servers".
A connection that starts, stops or queries a project is subscribed to that
project's status and log broadcasts.
"""

from __future__ import annotations

__all__ = ["DevServerCommands", "ServersHandler", "is_server_message", "status_envelope"]

import logging

from procmux.connection import Connection, Handshake
from procmux.constants import APP_NAME
from procmux.exceptions import ProjectNotFoundError, ProtocolError
from procmux.models import StatusInfo
from procmux.protocol.codec import decode_inbound
from procmux.protocol.envelope import (
    ErrorEnvelope,
    ScriptsData,
    ScriptsEnvelope,
    ServerStatusData,
    StatusEnvelope,
)
from procmux.protocol.inbound import (
    InboundMessage,
    ServerScriptsMessage,
    ServerStartMessage,
    ServerStatusMessage,
    ServerStopMessage,
)

from .manager import DevServerManager

_logger = logging.getLogger(f"{APP_NAME}.devserver")

ServerMessage = ServerStartMessage | ServerStopMessage | ServerStatusMessage | ServerScriptsMessage


def status_envelope(info: StatusInfo) -> StatusEnvelope:
    return StatusEnvelope(
        data=ServerStatusData(
            project_path=info.project_path,
            status=info.status,
            script=info.script,
            url=info.url,
            error=info.error,
        )
    )


def is_server_message(message: InboundMessage) -> bool:
    return isinstance(message, (ServerStartMessage, ServerStopMessage, ServerStatusMessage, ServerScriptsMessage))


class DevServerCommands:
    """Executes ``server:*`` messages on behalf of a connection."""

    def __init__(self, manager: DevServerManager) -> None:
        self._manager = manager

    async def handle(self, connection: Connection, message: ServerMessage) -> None:
        await self._manager.subscribe(message.project_path, connection)

        if isinstance(message, ServerStartMessage):
            result = await self._manager.start(message.project_path, message.script)
            if not result.success:
                await connection.send(ErrorEnvelope(error=result.error or "failed to start dev server"))
                return
            if result.status is not None:
                await connection.send(status_envelope(result.status))

        elif isinstance(message, ServerStopMessage):
            result = await self._manager.stop(message.project_path)
            if not result.success:
                await connection.send(ErrorEnvelope(error=result.error or "failed to stop dev server"))
                return
            await connection.send(status_envelope(self._manager.status(message.project_path)))

        elif isinstance(message, ServerStatusMessage):
            await connection.send(status_envelope(self._manager.status(message.project_path)))

        else:
            try:
                scripts = self._manager.available_scripts(message.project_path)
            except ProjectNotFoundError as e:
                await connection.send(ErrorEnvelope(error=str(e)))
                return
            await connection.send(
                ScriptsEnvelope(data=ScriptsData(project_path=message.project_path, scripts=scripts))
            )

    async def release(self, connection: Connection) -> None:
        """Drop every subscription held by a departing connection."""
        left = await self._manager.unsubscribe_all(connection)
        if left:
            _logger.debug(
                {
                    "event": "devserver_unsubscribed",
                    "message": f"{connection.id} left {len(left)} project group(s)",
                    "connection_id": connection.id,
                    "details": {"projects": left},
                }
            )


class ServersHandler:
    """Route handler for "/servers?projectPath=...".

    Subscribes the connection to one project, sends the current status, then
    accepts ``server:*`` commands until the peer goes away.
    """

    def __init__(self, commands: DevServerCommands, manager: DevServerManager) -> None:
        self._commands = commands
        self._manager = manager

    async def __call__(self, connection: Connection, handshake: Handshake) -> None:
        project_path = handshake.param("projectPath")
        if not project_path:
            await connection.send(ErrorEnvelope(error="projectPath query parameter is required"))
            return

        try:
            await self._manager.subscribe(project_path, connection)
            await connection.send(status_envelope(self._manager.status(project_path)))

            async for frame in connection.frames():
                try:
                    message = decode_inbound(frame)
                except ProtocolError as e:
                    _logger.warning(
                        {
                            "event": "envelope_dropped",
                            "message": f"Dropped inbound frame: {e}",
                            "project_path": project_path,
                            "error_type": type(e).__name__,
                            "error_message": str(e),
                        }
                    )
                    continue
                if is_server_message(message):
                    await self._commands.handle(connection, message)
                else:
                    _logger.info(
                        {
                            "event": "envelope_ignored",
                            "message": f"/servers ignores '{message.type}' messages",
                            "project_path": project_path,
                        }
                    )
        finally:
            await self._commands.release(connection)
