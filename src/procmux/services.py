"""Service wiring.

Builds the supervisor, the three process managers and the connection router
from one AppConfig, and tears them down in order on shutdown.
"""

from __future__ import annotations

__all__ = ["Services", "build_services"]

import logging
import os
import time
from dataclasses import dataclass, field

from procmux.assistant import AssistantManager, ChatHandler
from procmux.config import AppConfig
from procmux.constants import APP_NAME, CHAT_ROUTE, SERVERS_ROUTE, SHELL_ROUTE
from procmux.devserver import DevServerCommands, DevServerManager, ServersHandler
from procmux.models import ServerStatusResponse, SystemEvent
from procmux.providers import (
    JsonlSessionHistory,
    NullSessionHistory,
    PackageJsonProjectProvider,
    ProjectMetadataProvider,
    SessionHistoryProvider,
)
from procmux.router import ConnectionRouter
from procmux.shell import ShellHandler, ShellManager
from procmux.supervisor import ProcessSupervisor
from procmux.telemetry.system_logger import log_event

_logger = logging.getLogger(f"{APP_NAME}.services")


@dataclass
class Services:
    """Everything the server needs at runtime, stored on app.state."""

    config: AppConfig
    supervisor: ProcessSupervisor
    projects: ProjectMetadataProvider
    shells: ShellManager
    assistant: AssistantManager
    devservers: DevServerManager
    router: ConnectionRouter
    started_at: float = field(default_factory=time.monotonic)

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def status(self) -> ServerStatusResponse:
        return ServerStatusResponse(
            running=True,
            pid=os.getpid(),
            uptime_seconds=round(self.uptime_seconds, 3),
            connections=self.router.active_connections(),
            shells=self.shells.live_count,
            assistant_sessions=self.assistant.live_count,
            dev_servers=self.devservers.list_statuses(),
        )

    async def shutdown(self) -> None:
        """Terminate every managed process.

        Managers go first so their clients see proper exit/status envelopes;
        the supervisor then sweeps anything left.
        """
        log_event(
            logging.INFO,
            SystemEvent(
                event="services_shutdown_started",
                message=f"Shutting down ({self.supervisor.live_count} live process(es))",
            ),
            _logger,
        )
        await self.shells.shutdown()
        await self.assistant.shutdown()
        await self.devservers.shutdown()
        await self.supervisor.shutdown()
        log_event(
            logging.INFO,
            SystemEvent(event="services_shutdown_complete", message="All managed processes terminated"),
            _logger,
        )


def build_services(
    config: AppConfig,
    *,
    projects: ProjectMetadataProvider | None = None,
    history: SessionHistoryProvider | None = None,
) -> Services:
    """Wire managers and routes from configuration.

    Args:
        config: Application configuration.
        projects: Override the package.json project provider.
        history: Override the history provider chosen from config.
    """
    supervisor = ProcessSupervisor(config.supervisor)
    if projects is None:
        projects = PackageJsonProjectProvider(config.devserver.projects_root)
    if history is None:
        history_dir = config.assistant.history_dir
        history = JsonlSessionHistory(history_dir) if history_dir else NullSessionHistory()

    shells = ShellManager(supervisor, config.shell)
    assistant = AssistantManager(supervisor, config.assistant, history, projects)
    devservers = DevServerManager(supervisor, projects, config.devserver)
    commands = DevServerCommands(devservers)

    router = ConnectionRouter(queue_size=config.server.outbound_queue_size)
    router.register(SHELL_ROUTE, ShellHandler(shells, projects, assistant_executable=config.assistant.executable))
    router.register(CHAT_ROUTE, ChatHandler(assistant, commands))
    router.register(SERVERS_ROUTE, ServersHandler(commands, devservers))

    return Services(
        config=config,
        supervisor=supervisor,
        projects=projects,
        shells=shells,
        assistant=assistant,
        devservers=devservers,
        router=router,
    )
