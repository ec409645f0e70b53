"""Server orchestrator (run_server entry point).

Binds the listening socket, runs uvicorn, waits for SIGTERM/SIGINT and then
shuts down: stop accepting, terminate every managed process, exit.
"""

from __future__ import annotations

__all__ = ["run_server"]

import asyncio
import errno
import logging
import os
import signal
import socket

import uvicorn

from procmux.api.app import create_app
from procmux.config import AppConfig
from procmux.constants import APP_NAME, SERVER_SHUTDOWN_TIMEOUT_SECONDS
from procmux.models import SystemEvent
from procmux.services import build_services
from procmux.telemetry.system_logger import configure_logging, log_event

_logger = logging.getLogger(f"{APP_NAME}.server")

# Number of pending connections
HTTP_LISTEN_BACKLOG = 100


def _bind(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        if e.errno == errno.EADDRINUSE:
            raise RuntimeError(
                f"Port {port} is already in use.\n"
                f"Another process is using this port. "
                f"Use --port to specify a different port."
            ) from e
        raise
    sock.listen(HTTP_LISTEN_BACKLOG)
    sock.setblocking(False)
    return sock


async def run_server(config: AppConfig) -> None:
    """Run the server until a shutdown signal arrives.

    Args:
        config: Application configuration.

    Raises:
        RuntimeError: If the port is already in use.
    """
    configure_logging(config)

    # Suppress uvicorn's logging (we use our own)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)

    host, port = config.server.host, config.server.port
    http_socket = _bind(host, port)

    services = build_services(config)
    app = create_app(services)

    http_config = uvicorn.Config(
        app,
        fd=http_socket.fileno(),
        log_config=None,
        ws="websockets",
    )
    http_server = uvicorn.Server(http_config)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_signal(signum: int) -> None:
        log_event(
            logging.INFO,
            SystemEvent(
                event="shutdown_signal_received",
                message=f"Received signal {signum}, initiating shutdown",
                details={"signal": signum},
            ),
            _logger,
        )
        shutdown_event.set()

    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, handle_signal, signum)

    server_task = asyncio.create_task(http_server._serve(), name="uvicorn")

    log_event(
        logging.INFO,
        SystemEvent(
            event="server_started",
            message=f"procmux listening on http://{host}:{port} (pid={os.getpid()})",
            details={"host": host, "port": port, "pid": os.getpid()},
        ),
        _logger,
    )

    signal_waiter = asyncio.create_task(shutdown_event.wait(), name="shutdown-signal")
    try:
        # A crashed uvicorn task also ends the wait
        await asyncio.wait({server_task, signal_waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        signal_waiter.cancel()
        log_event(
            logging.INFO,
            SystemEvent(event="server_shutting_down", message="Server shutting down"),
            _logger,
        )

        await services.shutdown()

        http_server.should_exit = True
        try:
            await asyncio.wait_for(server_task, timeout=SERVER_SHUTDOWN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            log_event(
                logging.WARNING,
                SystemEvent(event="shutdown_timeout", message="Server shutdown timed out, cancelling"),
                _logger,
            )
            server_task.cancel()
        except asyncio.CancelledError:
            pass

        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(signum)

        try:
            http_socket.close()
        except OSError:
            pass  # Non-critical cleanup

        log_event(
            logging.INFO,
            SystemEvent(event="server_stopped", message="Server shutdown complete"),
            _logger,
        )
