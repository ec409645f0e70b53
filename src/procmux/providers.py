"""Collaborator interfaces consumed by the process managers.

ProjectMetadataProvider:
    Resolves a client-supplied project identifier to a directory and lists
    the runnable scripts in that project's manifest.

SessionHistoryProvider:
    Receives every assistant record after it has been forwarded live.
    Failures are logged by the caller and never delay delivery.
"""

from __future__ import annotations

__all__ = [
    "JsonlSessionHistory",
    "NullSessionHistory",
    "PackageJsonProjectProvider",
    "ProjectMetadataProvider",
    "SessionHistoryProvider",
]

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

from procmux.constants import APP_NAME, PROJECT_MANIFEST
from procmux.exceptions import ProjectNotFoundError

_logger = logging.getLogger(f"{APP_NAME}.providers")

_SAFE_SESSION_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class ProjectMetadataProvider(Protocol):
    def resolve_working_directory(self, identifier: str) -> Path: ...

    def list_available_scripts(self, path: Path) -> list[str]: ...


class SessionHistoryProvider(Protocol):
    async def append_record(self, session_id: str, record: dict[str, Any]) -> None: ...


class PackageJsonProjectProvider:
    """Projects are directories; scripts come from package.json.

    Args:
        projects_root: Base for relative identifiers. None means identifiers
            must be absolute (or ~-prefixed) paths.
    """

    def __init__(self, projects_root: str | None = None) -> None:
        self._root = Path(projects_root).expanduser() if projects_root else None

    def resolve_working_directory(self, identifier: str) -> Path:
        """Resolve an identifier to an existing directory.

        Raises:
            ProjectNotFoundError: If it does not name a directory.
        """
        candidate = Path(identifier).expanduser()
        if not candidate.is_absolute():
            if self._root is None:
                raise ProjectNotFoundError(identifier)
            candidate = self._root / candidate
        candidate = candidate.resolve()
        if self._root is not None and not candidate.is_relative_to(self._root.resolve()):
            raise ProjectNotFoundError(identifier)
        if not candidate.is_dir():
            raise ProjectNotFoundError(identifier)
        return candidate

    def list_available_scripts(self, path: Path) -> list[str]:
        """Script names from the project's package.json (empty if unreadable)."""
        manifest = path / PROJECT_MANIFEST
        try:
            with manifest.open(encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            _logger.warning(
                {
                    "event": "manifest_unreadable",
                    "message": f"Cannot read {manifest}: {e}",
                    "project_path": str(path),
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            return []
        scripts = data.get("scripts") if isinstance(data, dict) else None
        if not isinstance(scripts, dict):
            return []
        return [name for name, command in scripts.items() if isinstance(command, str)]


class NullSessionHistory:
    """Discards records."""

    async def append_record(self, session_id: str, record: dict[str, Any]) -> None:
        return None


class JsonlSessionHistory:
    """Appends records to <directory>/<session_id>.jsonl."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory).expanduser()

    def path_for(self, session_id: str) -> Path:
        if not _SAFE_SESSION_ID.match(session_id):
            raise ValueError(f"Unsafe session id for history file: {session_id!r}")
        return self._directory / f"{session_id}.jsonl"

    async def append_record(self, session_id: str, record: dict[str, Any]) -> None:
        path = self.path_for(session_id)
        line = json.dumps(record, ensure_ascii=False) + "\n"
        await asyncio.to_thread(self._append, path, line)

    def _append(self, path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(line)
