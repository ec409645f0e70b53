"""Application-wide constants for procmux.

Constants that define application behavior.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # HTTP / WebSocket server
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DEFAULT_OUTBOUND_QUEUE_SIZE",
    "SERVER_SHUTDOWN_TIMEOUT_SECONDS",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    # Routing paths
    "SHELL_ROUTE",
    "CHAT_ROUTE",
    "SERVERS_ROUTE",
    "UNKNOWN_ROUTE_CLOSE_CODE",
    "HANDLER_ERROR_CLOSE_CODE",
    # Process supervision
    "DEFAULT_GRACE_PERIOD_SECONDS",
    "DEFAULT_READ_CHUNK_SIZE",
    "EXIT_DRAIN_TIMEOUT_SECONDS",
    # Shell
    "DEFAULT_SHELL",
    "DEFAULT_TERM",
    "DEFAULT_COLS",
    "DEFAULT_ROWS",
    # Assistant CLI
    "DEFAULT_ASSISTANT_EXECUTABLE",
    "DEFAULT_ASSISTANT_MODEL",
    "ASSISTANT_ENV",
    # Dev servers
    "DEFAULT_DEVSERVER_RUNNER",
    "DEFAULT_READINESS_TIMEOUT_SECONDS",
    "DEVSERVER_ENV",
    "PROJECT_MANIFEST",
]

# =============================================================================
# Application identity
# =============================================================================

APP_NAME = "procmux"

# =============================================================================
# HTTP / WebSocket server
# =============================================================================

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765

# Per-connection outbound queue; broadcasts to a full queue are dropped
DEFAULT_OUTBOUND_QUEUE_SIZE = 1000

SERVER_SHUTDOWN_TIMEOUT_SECONDS = 10.0

# CLI -> running server requests
DEFAULT_HTTP_TIMEOUT_SECONDS = 5.0

# =============================================================================
# Routing paths
# =============================================================================

SHELL_ROUTE = "/shell"
CHAT_ROUTE = "/ws"
SERVERS_ROUTE = "/servers"

# Application-defined WebSocket close codes (4000-4999)
UNKNOWN_ROUTE_CLOSE_CODE = 4404
HANDLER_ERROR_CLOSE_CODE = 4500

# =============================================================================
# Process supervision
# =============================================================================

# SIGTERM -> SIGKILL escalation delay
DEFAULT_GRACE_PERIOD_SECONDS = 5.0

DEFAULT_READ_CHUNK_SIZE = 4096

# How long to wait for output readers after the child has exited.
# Grandchildren holding the PTY slave open would otherwise block EOF forever.
EXIT_DRAIN_TIMEOUT_SECONDS = 1.0

# =============================================================================
# Shell
# =============================================================================

DEFAULT_SHELL = "/bin/bash"
DEFAULT_TERM = "xterm-256color"
DEFAULT_COLS = 80
DEFAULT_ROWS = 30

# =============================================================================
# Assistant CLI
# =============================================================================

DEFAULT_ASSISTANT_EXECUTABLE = "claude"
DEFAULT_ASSISTANT_MODEL = "sonnet"

ASSISTANT_ENV = {
    "CI": "false",
    "COLORTERM": "truecolor",
    "FORCE_COLOR": "3",
    "TERM": "xterm-256color",
}

# =============================================================================
# Dev servers
# =============================================================================

DEFAULT_DEVSERVER_RUNNER = ("npm", "run")

# A server that never prints a recognizable port is marked running after this
DEFAULT_READINESS_TIMEOUT_SECONDS = 5.0

DEVSERVER_ENV = {"FORCE_COLOR": "1"}

PROJECT_MANIFEST = "package.json"
