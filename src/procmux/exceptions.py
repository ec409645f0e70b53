"""Custom exceptions for procmux.

This module contains all custom exceptions used throughout the package.
Exceptions are organized by the layer that raises them:

Routing Errors (connection attempt rejected, server continues):
    - UnknownRouteError: No handler registered for the requested path

Protocol Errors (envelope dropped with a warning, connection continues):
    - MalformedEnvelopeError: Inbound frame is not a valid envelope
    - UnknownEnvelopeTypeError: Inbound frame has an unrecognized type tag

Process Errors (reported to the owning connection as one envelope):
    - SpawnError: Child process could not be started
    - ProcessNotWritableError: Write attempted on a process that is not running

Collaborator Errors:
    - ProjectNotFoundError: Project identifier does not resolve to a directory

Usage:
    from procmux.exceptions import SpawnError, UnknownRouteError
"""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "ConnectionClosedError",
    "MalformedEnvelopeError",
    "ProcessError",
    "ProcessNotWritableError",
    "ProcmuxError",
    "ProjectNotFoundError",
    "ProtocolError",
    "SpawnError",
    "UnknownEnvelopeTypeError",
    "UnknownRouteError",
]

from typing import Any


class ProcmuxError(Exception):
    """Base class for all procmux errors."""


class ConfigurationError(ProcmuxError):
    """Raised when configuration is missing or invalid."""


# =============================================================================
# Routing
# =============================================================================


class UnknownRouteError(ProcmuxError):
    """Raised when a connection arrives on a path with no registered handler.

    Attributes:
        path: The requested routing path.
    """

    def __init__(self, path: str) -> None:
        super().__init__(f"No handler registered for path '{path}'")
        self.path = path


class ConnectionClosedError(ProcmuxError):
    """Raised by a transport when the peer has gone away."""

    def __init__(self, code: int | None = None) -> None:
        super().__init__(f"Connection closed (code={code})")
        self.code = code


# =============================================================================
# Protocol
# =============================================================================


class ProtocolError(ProcmuxError):
    """Base for inbound envelope errors.

    Protocol errors never terminate a connection; the offending frame is
    dropped and logged.

    Attributes:
        raw: The offending frame, truncated for logging.
    """

    def __init__(self, message: str, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        self.raw = raw[:200] if raw else raw


class MalformedEnvelopeError(ProtocolError):
    """Raised when a frame is not valid JSON or fails schema validation."""


class UnknownEnvelopeTypeError(ProtocolError):
    """Raised when a frame carries a type tag no handler understands.

    Attributes:
        envelope_type: The unrecognized tag.
    """

    def __init__(self, envelope_type: Any, raw: str | bytes | None = None) -> None:
        super().__init__(f"Unknown envelope type: {envelope_type!r}", raw)
        self.envelope_type = envelope_type


# =============================================================================
# Process supervision
# =============================================================================


class ProcessError(ProcmuxError):
    """Base for child process errors."""


class SpawnError(ProcessError):
    """Raised when the OS refuses to start a child process.

    Covers a missing executable, permission denied, and a bad working
    directory. Spawn failures are never retried.

    Attributes:
        command: The argv that failed to start.
        cwd: Working directory the spawn was attempted in.
    """

    def __init__(self, message: str, *, command: list[str] | None = None, cwd: str | None = None) -> None:
        super().__init__(message)
        self.command = command or []
        self.cwd = cwd


class ProcessNotWritableError(ProcessError):
    """Raised when writing to a process that is not in the running state.

    Attributes:
        state: The process state at the time of the write.
    """

    def __init__(self, state: str) -> None:
        super().__init__(f"Process is not writable in state '{state}'")
        self.state = state


# =============================================================================
# Collaborators
# =============================================================================


class ProjectNotFoundError(ProcmuxError):
    """Raised when a project identifier does not resolve to a directory.

    Attributes:
        identifier: The project identifier as supplied by the client.
    """

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Project not found: {identifier}")
        self.identifier = identifier
