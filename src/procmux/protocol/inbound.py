"""Inbound client messages.

Clients send JSON objects tagged by ``type``. Unknown extra keys are ignored
so older servers accept newer clients.
"""

from __future__ import annotations

__all__ = [
    "AbortSessionMessage",
    "AssistantOptions",
    "ClaudeCommandMessage",
    "INBOUND_TYPES",
    "InboundMessage",
    "InputMessage",
    "InterruptMessage",
    "ResizeMessage",
    "ServerScriptsMessage",
    "ServerStartMessage",
    "ServerStatusMessage",
    "ServerStopMessage",
    "ToolsSettings",
]

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _Inbound(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class InputMessage(_Inbound):
    """Keystrokes for a shell; written to the PTY verbatim."""

    type: Literal["input"]
    data: str


class ResizeMessage(_Inbound):
    type: Literal["resize"]
    cols: int = Field(ge=1, le=1000)
    rows: int = Field(ge=1, le=1000)


class ToolsSettings(_Inbound):
    """Tool permission flags passed through to the assistant CLI untouched."""

    allowed_tools: list[str] = Field(default_factory=list, alias="allowedTools")
    disallowed_tools: list[str] = Field(default_factory=list, alias="disallowedTools")
    skip_permissions: bool = Field(default=False, alias="skipPermissions")


class AssistantOptions(_Inbound):
    """Options for starting or resuming an assistant session.

    Attributes:
        cwd: Working directory for the CLI.
        project_path: Project identifier, used when cwd is absent.
        session_id: Identity to resume.
        resume: Resume ``session_id`` instead of starting fresh.
        tools_settings: Permission flags.
    """

    cwd: str | None = None
    project_path: str | None = Field(default=None, alias="projectPath")
    session_id: str | None = Field(default=None, alias="sessionId")
    resume: bool = False
    tools_settings: ToolsSettings = Field(default_factory=ToolsSettings, alias="toolsSettings")


class ClaudeCommandMessage(_Inbound):
    type: Literal["claude-command"]
    command: str | None = None
    options: AssistantOptions = Field(default_factory=AssistantOptions)


class InterruptMessage(_Inbound):
    type: Literal["interrupt"]
    session_id: str = Field(alias="sessionId")


class AbortSessionMessage(_Inbound):
    """Older clients' name for interrupt; answered with session-aborted."""

    type: Literal["abort-session"]
    session_id: str = Field(alias="sessionId")


class ServerStartMessage(_Inbound):
    type: Literal["server:start"]
    project_path: str = Field(alias="projectPath")
    script: str = Field(min_length=1)


class ServerStopMessage(_Inbound):
    type: Literal["server:stop"]
    project_path: str = Field(alias="projectPath")


class ServerStatusMessage(_Inbound):
    type: Literal["server:status"]
    project_path: str = Field(alias="projectPath")


class ServerScriptsMessage(_Inbound):
    type: Literal["server:scripts"]
    project_path: str = Field(alias="projectPath")


InboundMessage = Annotated[
    Union[
        InputMessage,
        ResizeMessage,
        ClaudeCommandMessage,
        InterruptMessage,
        AbortSessionMessage,
        ServerStartMessage,
        ServerStopMessage,
        ServerStatusMessage,
        ServerScriptsMessage,
    ],
    Field(discriminator="type"),
]

INBOUND_TYPES: frozenset[str] = frozenset(
    {
        "input",
        "resize",
        "claude-command",
        "interrupt",
        "abort-session",
        "server:start",
        "server:stop",
        "server:status",
        "server:scripts",
    }
)
