"""Dev-server API request/response schemas."""

from __future__ import annotations

__all__ = [
    "ScriptsResponse",
    "StartServerRequest",
    "StopServerRequest",
]

from pydantic import BaseModel, Field


class StartServerRequest(BaseModel):
    """Start a manifest script in a project."""

    project_path: str = Field(min_length=1)
    script: str = Field(min_length=1)


class StopServerRequest(BaseModel):
    project_path: str = Field(min_length=1)


class ScriptsResponse(BaseModel):
    project_path: str
    scripts: list[str]
