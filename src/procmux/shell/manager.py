"""Shell session manager.

Each shell session is a PTY-backed process tied 1:1 to the connection that
opened it. Opening a session whose id is still live elsewhere replaces the
old one; closing the connection releases the session immediately and
terminates the process in the background.
"""

from __future__ import annotations

__all__ = ["ShellManager", "ShellSession"]

import asyncio
import logging
import os
import secrets
import shlex
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from procmux.config import ShellConfig
from procmux.connection import Connection
from procmux.constants import APP_NAME, DEFAULT_SHELL
from procmux.models import SystemEvent
from procmux.supervisor import KeyedRegistry, ManagedProcess, ProcessSpec, ProcessSupervisor
from procmux.telemetry.system_logger import log_event

from .urls import BROWSER_OVERRIDE

_logger = logging.getLogger(f"{APP_NAME}.shell")


@dataclass
class ShellSession:
    """A live shell and the connection that owns it."""

    session_id: str
    process: ManagedProcess
    connection: Connection
    cwd: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ShellManager:
    """Owns every live shell session."""

    def __init__(self, supervisor: ProcessSupervisor, config: ShellConfig | None = None) -> None:
        self._supervisor = supervisor
        self._config = config or ShellConfig()
        self._sessions: KeyedRegistry[str, ShellSession] = KeyedRegistry()
        self._cleanup_tasks: set[asyncio.Task[None]] = set()

    @property
    def config(self) -> ShellConfig:
        return self._config

    @property
    def live_count(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> ShellSession | None:
        return self._sessions.get(session_id)

    @staticmethod
    def new_session_id() -> str:
        return f"shell-{int(time.time() * 1000)}-{secrets.token_hex(5)}"

    def shell_command(self, launch: list[str] | None = None) -> list[str]:
        """The argv to run in the PTY.

        Args:
            launch: Program to run through the shell instead of an
                interactive prompt (e.g. the assistant CLI).
        """
        shell = self._config.command or [os.environ.get("SHELL") or DEFAULT_SHELL]
        if launch:
            return [shell[0], "-c", shlex.join(launch)]
        return list(shell)

    async def open(
        self,
        connection: Connection,
        *,
        session_id: str,
        cwd: Path,
        cols: int,
        rows: int,
        launch: list[str] | None = None,
    ) -> ShellSession:
        """Spawn a shell for a connection.

        Raises:
            SpawnError: If the shell could not be started.
        """
        async with self._sessions.lock(session_id):
            existing = self._sessions.pop(session_id)
            if existing is not None:
                _logger.warning(
                    {
                        "event": "shell_replaced",
                        "message": f"Shell session {session_id} reopened, replacing previous process",
                        "session_id": session_id,
                        "details": {"old_connection_id": existing.connection.id},
                    }
                )
                await existing.process.terminate()

            spec = ProcessSpec(
                command=self.shell_command(launch),
                cwd=str(cwd),
                env={
                    "TERM": self._config.term,
                    "COLORTERM": "truecolor",
                    "BROWSER": BROWSER_OVERRIDE,
                },
                pty=True,
                cols=cols,
                rows=rows,
                stop_signal=signal.SIGHUP,
            )
            process = await self._supervisor.spawn(spec, owner=connection.id)
            session = ShellSession(session_id=session_id, process=process, connection=connection, cwd=str(cwd))
            self._sessions.set(session_id, session)

        log_event(
            logging.INFO,
            SystemEvent(
                event="shell_opened",
                message=f"Shell {session_id} started in {cwd} (pid={process.pid})",
                connection_id=connection.id,
                session_id=session_id,
                pid=process.pid,
            ),
            _logger,
        )
        return session

    def release(self, session: ShellSession) -> None:
        """Forget a session now and terminate its process in the background.

        Bookkeeping is removed before this returns; the process may take up
        to the grace period (plus escalation) to actually exit.
        """
        if self._sessions.get(session.session_id) is session:
            self._sessions.pop(session.session_id)
        if session.process.is_finished:
            return
        task = asyncio.create_task(session.process.terminate(), name=f"shell-cleanup-{session.session_id}")
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_done)

    def _cleanup_done(self, task: asyncio.Task[None]) -> None:
        self._cleanup_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error(
                {
                    "event": "shell_cleanup_failed",
                    "message": f"Failed to terminate shell: {exc}",
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                }
            )

    async def shutdown(self) -> None:
        """Terminate every live shell and wait for pending cleanups."""
        sessions = self._sessions.values()
        for session in sessions:
            self.release(session)
        if self._cleanup_tasks:
            await asyncio.gather(*list(self._cleanup_tasks), return_exceptions=True)
