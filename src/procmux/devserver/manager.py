"""Project dev-server manager.

At most one dev server runs per project. Status transitions and log lines
are broadcast to the project's subscribers without blocking the server's
output pump; a subscriber that falls behind loses envelopes.

Lifecycle per project:
    starting -> running -> stopping -> stopped
    starting | running -> error   (unexpected exit or spawn failure)

An ``error`` record is retained, so late subscribers can still read what
went wrong, until the project is stopped or started again.
"""

from __future__ import annotations

__all__ = ["DevServerManager", "DevServerRecord"]

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from procmux.config import DevServerConfig
from procmux.constants import APP_NAME, DEVSERVER_ENV
from procmux.exceptions import ProjectNotFoundError, SpawnError
from procmux.models import DevServerStatus, StartResult, StatusInfo, StopResult, SystemEvent
from procmux.protocol.envelope import LogData, LogEnvelope, ServerStatusData, StatusEnvelope
from procmux.providers import ProjectMetadataProvider
from procmux.supervisor import BroadcastGroups, KeyedRegistry, ManagedProcess, ProcessSpec, ProcessSupervisor
from procmux.supervisor.broadcast import Subscriber
from procmux.telemetry.system_logger import log_event
from procmux.utils.text import LineBuffer

from .detection import ReadinessDetector, RegexPortDetector, local_url

_logger = logging.getLogger(f"{APP_NAME}.devserver")

SCRIPT_NOT_FOUND = "script not found"

_ACTIVE = (DevServerStatus.STARTING, DevServerStatus.RUNNING)


@dataclass
class DevServerRecord:
    """Bookkeeping for one project's dev server."""

    project_path: str
    script: str
    status: DevServerStatus = DevServerStatus.STARTING
    process: ManagedProcess | None = None
    url: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None
    stop_requested: bool = False
    consumer: asyncio.Task[None] | None = field(default=None, repr=False)
    readiness: asyncio.Task[None] | None = field(default=None, repr=False)

    def info(self) -> StatusInfo:
        return StatusInfo(
            project_path=self.project_path,
            status=self.status,
            script=self.script,
            url=self.url,
            pid=self.process.pid if self.process is not None and not self.process.is_finished else None,
            started_at=self.started_at.isoformat(),
            error=self.error,
        )


class DevServerManager:
    """Starts, stops and reports on per-project dev servers."""

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        projects: ProjectMetadataProvider,
        config: DevServerConfig | None = None,
        detector: ReadinessDetector | None = None,
    ) -> None:
        self._supervisor = supervisor
        self._projects = projects
        self._config = config or DevServerConfig()
        self._detector = detector or RegexPortDetector()
        self._records: KeyedRegistry[str, DevServerRecord] = KeyedRegistry()
        self._groups = BroadcastGroups()

    @property
    def config(self) -> DevServerConfig:
        return self._config

    @property
    def groups(self) -> BroadcastGroups:
        return self._groups

    def _key(self, project_path: str) -> str:
        """Canonical key for a project: its resolved directory when it exists."""
        try:
            return str(self._projects.resolve_working_directory(project_path))
        except ProjectNotFoundError:
            return project_path

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def status(self, project_path: str) -> StatusInfo:
        """Current status; ``stopped`` when nothing is tracked."""
        key = self._key(project_path)
        record = self._records.get(key)
        if record is None:
            return StatusInfo(project_path=key, status=DevServerStatus.STOPPED)
        return record.info()

    def list_statuses(self) -> list[StatusInfo]:
        return [record.info() for record in self._records.values()]

    def available_scripts(self, project_path: str) -> list[str]:
        """Scripts runnable in a project.

        Raises:
            ProjectNotFoundError: If the project does not resolve.
        """
        path = self._projects.resolve_working_directory(project_path)
        return self._projects.list_available_scripts(path)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(self, project_path: str, subscriber: Subscriber) -> str:
        """Add a subscriber to a project's group. Returns the group key."""
        key = self._key(project_path)
        await self._groups.subscribe(key, subscriber)
        return key

    async def unsubscribe(self, project_path: str, subscriber: Subscriber) -> None:
        await self._groups.unsubscribe(self._key(project_path), subscriber)

    async def unsubscribe_all(self, subscriber: Subscriber) -> list[str]:
        return await self._groups.unsubscribe_all(subscriber)

    async def _broadcast_status(self, record: DevServerRecord) -> None:
        await self._groups.broadcast(
            record.project_path,
            StatusEnvelope(
                data=ServerStatusData(
                    project_path=record.project_path,
                    status=record.status,
                    script=record.script,
                    url=record.url,
                    error=record.error,
                )
            ),
        )

    # -------------------------------------------------------------------------
    # Start / stop
    # -------------------------------------------------------------------------

    async def start(self, project_path: str, script: str) -> StartResult:
        """Start a script in a project.

        Idempotent: a project whose server is starting or running gets its
        current status back and nothing new is spawned.
        """
        try:
            cwd = self._projects.resolve_working_directory(project_path)
        except ProjectNotFoundError as e:
            return StartResult(success=False, error=str(e))
        key = str(cwd)

        async with self._records.lock(key):
            existing = self._records.get(key)
            if existing is not None and existing.status in _ACTIVE:
                return StartResult(success=True, status=existing.info())

            if script not in self._projects.list_available_scripts(cwd):
                return StartResult(success=False, error=SCRIPT_NOT_FOUND)

            if existing is not None:
                if existing.consumer is not None:
                    await asyncio.wait({existing.consumer})
                self._records.pop(key)

            record = DevServerRecord(project_path=key, script=script)
            self._records.set(key, record)
            await self._broadcast_status(record)

            spec = ProcessSpec(command=[*self._config.runner, script], cwd=key, env=DEVSERVER_ENV)
            try:
                record.process = await self._supervisor.spawn(spec, owner=key)
            except SpawnError as e:
                record.status = DevServerStatus.ERROR
                record.error = str(e)
                await self._broadcast_status(record)
                return StartResult(success=False, error=str(e), status=record.info())

            record.consumer = asyncio.create_task(self._consume(record), name=f"devserver-{key}")
            record.readiness = asyncio.create_task(self._readiness_timeout(record), name=f"readiness-{key}")

        log_event(
            logging.INFO,
            SystemEvent(
                event="devserver_started",
                message=f"Dev server '{script}' started in {key} (pid={record.process.pid})",
                project_path=key,
                pid=record.process.pid,
            ),
            _logger,
        )
        return StartResult(success=True, status=record.info())

    async def stop(self, project_path: str) -> StopResult:
        """Stop a project's server, or clear its retained error."""
        key = self._key(project_path)
        async with self._records.lock(key):
            record = self._records.get(key)
            if record is None:
                return StopResult(success=False, error="no dev server for project")

            if record.process is None or record.process.is_finished:
                record.stop_requested = True
                if record.consumer is not None:
                    await asyncio.wait({record.consumer})
                self._records.pop(key)
                record.status = DevServerStatus.STOPPED
                await self._broadcast_status(record)
                return StopResult(success=True)

            record.stop_requested = True
            record.status = DevServerStatus.STOPPING
            if record.readiness is not None:
                record.readiness.cancel()
            await self._broadcast_status(record)

            await record.process.terminate(graceful=True)
            if record.consumer is not None:
                await asyncio.wait({record.consumer})

            record.status = DevServerStatus.STOPPED
            self._records.pop(key)
            await self._broadcast_status(record)

        log_event(
            logging.INFO,
            SystemEvent(
                event="devserver_stopped",
                message=f"Dev server '{record.script}' in {key} stopped",
                project_path=key,
                exit_code=record.process.exit_code,
            ),
            _logger,
        )
        return StopResult(success=True)

    async def shutdown(self) -> None:
        """Stop every tracked server."""
        keys = [key for key, _ in self._records.snapshot()]
        await asyncio.gather(*(self.stop(key) for key in keys), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Output and readiness
    # -------------------------------------------------------------------------

    async def _mark_running(self, record: DevServerRecord, url: str | None) -> None:
        record.status = DevServerStatus.RUNNING
        record.url = url
        if record.readiness is not None and record.readiness is not asyncio.current_task():
            record.readiness.cancel()
        await self._broadcast_status(record)

    async def _readiness_timeout(self, record: DevServerRecord) -> None:
        await asyncio.sleep(self._config.readiness_timeout_seconds)
        if record.status is DevServerStatus.STARTING:
            _logger.info(
                {
                    "event": "devserver_readiness_timeout",
                    "message": f"No port announced by {record.project_path} within "
                    f"{self._config.readiness_timeout_seconds}s, assuming running",
                    "project_path": record.project_path,
                }
            )
            await self._mark_running(record, None)

    async def _handle_line(self, record: DevServerRecord, stream: str, line: str) -> None:
        if not line.strip():
            return
        if record.status is DevServerStatus.STARTING:
            port = self._detector.detect(line)
            if port is not None:
                await self._mark_running(record, local_url(port))
        await self._groups.broadcast(
            record.project_path,
            LogEnvelope(data=LogData(stream=stream, message=line, project_path=record.project_path)),
        )

    async def _consume(self, record: DevServerRecord) -> None:
        assert record.process is not None
        buffers = {"stdout": LineBuffer(), "stderr": LineBuffer()}
        async for event in record.process.events:
            if event.kind == "output":
                stream = "stderr" if event.stream == "stderr" else "stdout"
                for line in buffers[stream].feed(event.data):
                    await self._handle_line(record, stream, line)
                continue

            for stream, buffer in buffers.items():
                await self._handle_line(record, stream, buffer.remainder())

            # A stopped or replaced record reports nothing
            if record.stop_requested or self._records.get(record.project_path) is not record:
                return
            if record.readiness is not None:
                record.readiness.cancel()
            record.status = DevServerStatus.ERROR
            record.error = f"Process exited unexpectedly (code={event.exit_code}, signal={event.signal})"
            log_event(
                logging.WARNING,
                SystemEvent(
                    event="devserver_crashed",
                    message=f"Dev server '{record.script}' in {record.project_path} exited unexpectedly",
                    project_path=record.project_path,
                    pid=record.process.pid,
                    exit_code=event.exit_code,
                    details={"signal": event.signal},
                ),
                _logger,
            )
            await self._broadcast_status(record)

