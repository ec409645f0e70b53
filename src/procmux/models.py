"""Pydantic models shared across procmux.

This module contains two categories of models:

API Response Models (FrozenModel-based):
- FrozenModel: Base class for immutable models
- StatusInfo: Dev-server status snapshot
- StartResult / StopResult: Dev-server command outcomes
- ServerStatusResponse: Health endpoint payload

Logging Models:
- SystemEvent: System log entries
"""

from __future__ import annotations

__all__ = [
    # API Response Models
    "DevServerStatus",
    "FrozenModel",
    "ServerStatusResponse",
    "StartResult",
    "StatusInfo",
    "StopResult",
    # Logging Models
    "SystemEvent",
]

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# API Response Models
# =============================================================================


class FrozenModel(BaseModel):
    """Base class for immutable Pydantic models."""

    model_config = ConfigDict(frozen=True)


class DevServerStatus(str, Enum):
    """Lifecycle of a project dev server as seen by subscribers."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class StatusInfo(FrozenModel):
    """Snapshot of one project's dev server.

    Attributes:
        project_path: Resolved project directory.
        status: Current lifecycle state.
        script: Manifest script being run, None when nothing was started.
        url: Detected local URL, None until a port is seen.
        pid: Child pid while a process exists.
        started_at: ISO 8601 start time.
        error: Last failure message for the error state.
    """

    project_path: str
    status: DevServerStatus
    script: str | None = None
    url: str | None = None
    pid: int | None = None
    started_at: str | None = None
    error: str | None = None


class StartResult(FrozenModel):
    """Outcome of a dev-server start request."""

    success: bool
    error: str | None = None
    status: StatusInfo | None = None


class StopResult(FrozenModel):
    """Outcome of a dev-server stop request."""

    success: bool
    error: str | None = None


class ServerStatusResponse(FrozenModel):
    """Response model for the health endpoint.

    Attributes:
        running: Always True when the endpoint answers.
        pid: Server process id.
        uptime_seconds: Seconds since the services were created.
        connections: Active connection count per routing path.
        shells: Live shell sessions.
        assistant_sessions: Live assistant runs.
        dev_servers: Tracked dev-server records.
    """

    running: bool
    pid: int
    uptime_seconds: float
    connections: dict[str, int]
    shells: int
    assistant_sessions: int
    dev_servers: list[StatusInfo]


# =============================================================================
# Logging Models
# =============================================================================


class SystemEvent(BaseModel):
    """One system log entry (<log_dir>/procmux/system.jsonl).

    Note: 'time' is None when created, populated by ISO8601Formatter during logging.
    """

    # --- core ---
    time: Optional[str] = Field(
        None,
        description="ISO 8601 timestamp (UTC), added by formatter during serialization",
    )
    event: Optional[str] = Field(
        None,
        description="Machine-friendly event name, e.g. 'connection_routed', 'process_exited'",
    )
    message: str = Field(description="Human-readable log message")

    # --- connection context ---
    connection_id: Optional[str] = Field(None, description="Correlation id of the connection")
    path: Optional[str] = Field(None, description="Routing path, e.g. '/shell'")

    # --- process context ---
    session_id: Optional[str] = Field(None, description="Shell or assistant session identity")
    project_path: Optional[str] = Field(None, description="Dev-server project directory")
    pid: Optional[int] = Field(None, description="Child process id")
    exit_code: Optional[int] = Field(None, description="Child exit code")

    # --- errors ---
    error_type: Optional[str] = Field(None, description="Exception class name")
    error_message: Optional[str] = Field(None, description="Exception message")

    # --- additional structured details ---
    details: Optional[Dict[str, Any]] = Field(None, description="Event-specific context")

    model_config = ConfigDict(extra="allow")
