"""Connection handler for interactive shells ("/shell").

Handshake query parameters:
    sessionId   Session identity to use (generated when absent).
    cwd         Working directory, or
    projectPath Project identifier resolved through the project provider.
    cols, rows  Initial terminal size.
    launch      "assistant" runs the assistant CLI in the terminal instead
                of an interactive shell; resumeSessionId resumes one.
"""

from __future__ import annotations

__all__ = ["ShellHandler"]

import asyncio
import codecs
import logging
from pathlib import Path

from procmux.connection import Connection, Handshake
from procmux.constants import APP_NAME
from procmux.exceptions import ProcessNotWritableError, ProjectNotFoundError, ProtocolError, SpawnError
from procmux.protocol.codec import decode_inbound
from procmux.protocol.envelope import (
    ErrorEnvelope,
    ExitData,
    ExitEnvelope,
    OutputEnvelope,
    SessionIdEnvelope,
    UrlOpenData,
    UrlOpenEnvelope,
)
from procmux.protocol.inbound import InputMessage, ResizeMessage
from procmux.providers import ProjectMetadataProvider

from .manager import ShellManager, ShellSession
from .urls import find_open_urls, rewrite_open_url_markers

_logger = logging.getLogger(f"{APP_NAME}.shell")


class ShellHandler:
    """Bridges one connection to one PTY shell session."""

    def __init__(
        self,
        manager: ShellManager,
        projects: ProjectMetadataProvider,
        assistant_executable: str = "claude",
    ) -> None:
        self._manager = manager
        self._projects = projects
        self._assistant_executable = assistant_executable

    async def __call__(self, connection: Connection, handshake: Handshake) -> None:
        session_id = handshake.param("sessionId") or self._manager.new_session_id()

        try:
            cwd = self._resolve_cwd(handshake)
            session = await self._manager.open(
                connection,
                session_id=session_id,
                cwd=cwd,
                cols=handshake.int_param("cols", self._manager.config.default_cols),
                rows=handshake.int_param("rows", self._manager.config.default_rows),
                launch=self._launch_command(handshake),
            )
        except (SpawnError, ProjectNotFoundError) as e:
            await connection.send(ErrorEnvelope(error=str(e), session_id=session_id))
            return

        try:
            await connection.send(SessionIdEnvelope(session_id=session_id))
            output_task = asyncio.create_task(self._forward_output(connection, session))
            input_task = asyncio.create_task(self._consume_input(connection, session))
            done, pending = await asyncio.wait({output_task, input_task}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                task.result()
        finally:
            self._manager.release(session)

    def _resolve_cwd(self, handshake: Handshake) -> Path:
        cwd = handshake.param("cwd")
        if cwd:
            path = Path(cwd).expanduser()
            if not path.is_dir():
                raise ProjectNotFoundError(cwd)
            return path
        project = handshake.param("projectPath")
        if project:
            return self._projects.resolve_working_directory(project)
        return Path.home()

    def _launch_command(self, handshake: Handshake) -> list[str] | None:
        if handshake.param("launch") != "assistant":
            return None
        resume_id = handshake.param("resumeSessionId")
        if resume_id:
            return [self._assistant_executable, "--resume", resume_id]
        return [self._assistant_executable]

    async def _forward_output(self, connection: Connection, session: ShellSession) -> None:
        # Multi-byte characters may be split across PTY reads
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        async for event in session.process.events:
            if event.kind == "output":
                text = decoder.decode(event.data)
                if not text:
                    continue
                for url in find_open_urls(text):
                    await connection.send(UrlOpenEnvelope(session_id=session.session_id, data=UrlOpenData(url=url)))
                await connection.send(OutputEnvelope(data=rewrite_open_url_markers(text)))
            else:
                tail = decoder.decode(b"", final=True)
                if tail:
                    await connection.send(OutputEnvelope(data=tail))
                await connection.send(
                    ExitEnvelope(
                        session_id=session.session_id,
                        exit_code=event.exit_code,
                        data=ExitData(signal=event.signal),
                    )
                )

    async def _consume_input(self, connection: Connection, session: ShellSession) -> None:
        async for frame in connection.frames():
            try:
                message = decode_inbound(frame)
            except ProtocolError as e:
                _logger.warning(
                    {
                        "event": "envelope_dropped",
                        "message": f"Dropped inbound frame: {e}",
                        "session_id": session.session_id,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    }
                )
                continue

            if isinstance(message, InputMessage):
                try:
                    await session.process.write(message.data.encode("utf-8"))
                except ProcessNotWritableError as e:
                    _logger.debug(
                        {
                            "event": "shell_input_dropped",
                            "message": f"Input for {session.session_id} dropped: {e}",
                            "session_id": session.session_id,
                        }
                    )
            elif isinstance(message, ResizeMessage):
                session.process.resize(message.cols, message.rows)
            else:
                _logger.info(
                    {
                        "event": "envelope_ignored",
                        "message": f"Shell ignores '{message.type}' messages",
                        "session_id": session.session_id,
                    }
                )
