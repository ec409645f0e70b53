"""Connection handler for assistant chat ("/ws").

Accepts ``claude-command``, ``interrupt`` and ``abort-session`` messages for
the assistant, and ``server:*`` messages for project dev servers. A
``sessionId`` query parameter re-attaches the connection to a session that
kept running after its previous connection went away.
"""

from __future__ import annotations

__all__ = ["ChatHandler"]

import logging

from procmux.connection import Connection, Handshake
from procmux.constants import APP_NAME
from procmux.devserver.handler import DevServerCommands, is_server_message
from procmux.exceptions import ProjectNotFoundError, ProtocolError, SpawnError
from procmux.protocol.codec import decode_inbound
from procmux.protocol.envelope import (
    AbortData,
    AssistantStatusData,
    ErrorEnvelope,
    SessionAbortedEnvelope,
    StatusEnvelope,
)
from procmux.protocol.inbound import AbortSessionMessage, ClaudeCommandMessage, InterruptMessage

from .manager import AssistantManager

_logger = logging.getLogger(f"{APP_NAME}.assistant")


class ChatHandler:
    def __init__(self, assistant: AssistantManager, commands: DevServerCommands) -> None:
        self._assistant = assistant
        self._commands = commands

    async def __call__(self, connection: Connection, handshake: Handshake) -> None:
        attach_id = handshake.param("sessionId")
        if attach_id and self._assistant.attach(attach_id, connection.send, owner_id=connection.id):
            _logger.info(
                {
                    "event": "assistant_session_attached",
                    "message": f"{connection.id} re-attached to session {attach_id}",
                    "session_id": attach_id,
                }
            )

        try:
            async for frame in connection.frames():
                try:
                    message = decode_inbound(frame)
                except ProtocolError as e:
                    _logger.warning(
                        {
                            "event": "envelope_dropped",
                            "message": f"Dropped inbound frame: {e}",
                            "error_type": type(e).__name__,
                            "error_message": str(e),
                        }
                    )
                    continue

                if isinstance(message, ClaudeCommandMessage):
                    await self._run_command(connection, message)
                elif isinstance(message, InterruptMessage):
                    if not await self._assistant.interrupt(message.session_id):
                        await connection.send(
                            StatusEnvelope(
                                session_id=message.session_id,
                                data=AssistantStatusData(can_interrupt=False, message="No active process"),
                            )
                        )
                elif isinstance(message, AbortSessionMessage):
                    success = await self._assistant.interrupt(message.session_id)
                    await connection.send(
                        SessionAbortedEnvelope(session_id=message.session_id, data=AbortData(success=success))
                    )
                elif is_server_message(message):
                    await self._commands.handle(connection, message)
                else:
                    _logger.info(
                        {
                            "event": "envelope_ignored",
                            "message": f"Chat ignores '{message.type}' messages",
                        }
                    )
        finally:
            await self._assistant.detach(connection.id)
            await self._commands.release(connection)

    async def _run_command(self, connection: Connection, message: ClaudeCommandMessage) -> None:
        options = message.options
        try:
            if options.resume and options.session_id:
                await self._assistant.resume(
                    options.session_id,
                    message.command,
                    connection.send,
                    options,
                    owner_id=connection.id,
                )
            else:
                await self._assistant.start(options, message.command, connection.send, owner_id=connection.id)
        except SpawnError:
            # The manager already sent the error envelope
            return
        except ProjectNotFoundError as e:
            await connection.send(ErrorEnvelope(error=str(e), session_id=options.session_id))
