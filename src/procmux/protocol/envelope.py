"""Outbound message envelopes.

Every unit sent to a client is an envelope of the shape

    {"type": str, "data"?: any, "error"?: str, "sessionId"?: str, "exitCode"?: int | null}

modeled as a tagged union keyed by ``type``. Each tag narrows ``data`` to its
own payload model. Fields that were never set are omitted on the wire; a field
set explicitly to None (``exitCode`` of a signal-killed process) is kept.
"""

from __future__ import annotations

__all__ = [
    "AbortData",
    "AssistantEnvelope",
    "AssistantStatusData",
    "Envelope",
    "ErrorEnvelope",
    "ExitData",
    "ExitEnvelope",
    "InteractivePromptEnvelope",
    "LogData",
    "LogEnvelope",
    "OutboundEnvelope",
    "OutputEnvelope",
    "ResponseEnvelope",
    "ResultEnvelope",
    "ScriptsData",
    "ScriptsEnvelope",
    "ServerStatusData",
    "SessionAbortedEnvelope",
    "SessionIdData",
    "SessionIdEnvelope",
    "StatusEnvelope",
    "ToolUseEnvelope",
    "UrlOpenData",
    "UrlOpenEnvelope",
    "utc_timestamp",
]

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from procmux.models import DevServerStatus


def utc_timestamp() -> str:
    """Current time as an ISO 8601 UTC string."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


# =============================================================================
# Payloads
# =============================================================================


class SessionIdData(_Payload):
    """Whether the identity in ``sessionId`` was just created or resumed."""

    is_new_session: bool = Field(alias="isNewSession")


class ExitData(_Payload):
    """Exit details for a finished process."""

    signal: int | None = None
    interrupted: bool = False
    is_new_session: bool | None = Field(default=None, alias="isNewSession")


class ServerStatusData(_Payload):
    """Dev-server status transition."""

    project_path: str = Field(alias="projectPath")
    status: DevServerStatus
    script: str | None = None
    url: str | None = None
    timestamp: str = Field(default_factory=utc_timestamp)
    error: str | None = None


class AssistantStatusData(_Payload):
    """Assistant activity indicator.

    ``message`` is the parsed spinner action (e.g. "Thinking..."), ``tokens``
    the running token count when the CLI reports one.
    """

    can_interrupt: bool
    message: str | None = None
    tokens: int | None = None
    raw: str | None = None


class LogData(_Payload):
    """One line of process output destined for log viewers."""

    stream: Literal["stdout", "stderr"]
    message: str
    project_path: str | None = Field(default=None, alias="projectPath")
    timestamp: str = Field(default_factory=utc_timestamp)


class UrlOpenData(_Payload):
    url: str


class AbortData(_Payload):
    success: bool


class ScriptsData(_Payload):
    project_path: str = Field(alias="projectPath")
    scripts: list[str]


# =============================================================================
# Envelopes
# =============================================================================


class Envelope(BaseModel):
    """Base envelope. Subclasses fix ``type`` and narrow ``data``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str
    data: Any = None
    error: str | None = None
    session_id: str | None = Field(default=None, alias="sessionId")
    exit_code: int | None = Field(default=None, alias="exitCode")

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the wire dict: type first, then explicitly set fields."""
        dumped = self.model_dump(mode="json", by_alias=True)
        wire: dict[str, Any] = {"type": self.type}
        for name in type(self).model_fields:
            if name == "type" or name not in self.model_fields_set:
                continue
            key = type(self).model_fields[name].alias or name
            wire[key] = dumped[key]
        return wire


class SessionIdEnvelope(Envelope):
    type: Literal["session-id"] = "session-id"
    data: SessionIdData | None = None


class OutputEnvelope(Envelope):
    """Raw output chunk (PTY bytes decoded as UTF-8, or an assistant text line)."""

    type: Literal["output"] = "output"
    data: str


class StatusEnvelope(Envelope):
    type: Literal["status"] = "status"
    data: ServerStatusData | AssistantStatusData | dict[str, Any]


class LogEnvelope(Envelope):
    type: Literal["log"] = "log"
    data: LogData


class ExitEnvelope(Envelope):
    type: Literal["exit"] = "exit"
    data: ExitData | None = None


class ErrorEnvelope(Envelope):
    type: Literal["error"] = "error"
    error: str


class AssistantEnvelope(Envelope):
    """Assistant text turn; ``data`` is the raw CLI record."""

    type: Literal["assistant"] = "assistant"
    data: dict[str, Any]


class ToolUseEnvelope(Envelope):
    """Assistant turn that invokes a tool; ``data`` is the raw CLI record."""

    type: Literal["tool-use"] = "tool-use"
    data: dict[str, Any]


class ResultEnvelope(Envelope):
    """Final result record of a run."""

    type: Literal["result"] = "result"
    data: dict[str, Any]


class ResponseEnvelope(Envelope):
    """Any other CLI record (system init, tool results)."""

    type: Literal["response"] = "response"
    data: dict[str, Any]


class InteractivePromptEnvelope(Envelope):
    """Unterminated output that looks like the CLI waiting for a keypress."""

    type: Literal["interactive-prompt"] = "interactive-prompt"
    data: str


class UrlOpenEnvelope(Envelope):
    type: Literal["url-open"] = "url-open"
    data: UrlOpenData


class SessionAbortedEnvelope(Envelope):
    type: Literal["session-aborted"] = "session-aborted"
    data: AbortData


class ScriptsEnvelope(Envelope):
    type: Literal["scripts"] = "scripts"
    data: ScriptsData


OutboundEnvelope = Annotated[
    Union[
        SessionIdEnvelope,
        OutputEnvelope,
        StatusEnvelope,
        LogEnvelope,
        ExitEnvelope,
        ErrorEnvelope,
        AssistantEnvelope,
        ToolUseEnvelope,
        ResultEnvelope,
        ResponseEnvelope,
        InteractivePromptEnvelope,
        UrlOpenEnvelope,
        SessionAbortedEnvelope,
        ScriptsEnvelope,
    ],
    Field(discriminator="type"),
]
