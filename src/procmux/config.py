"""Configuration for procmux.

Defines the configuration model for the server and its process managers.
Config is stored at the OS-appropriate location (click.get_app_dir).

Example usage:
    # Load from config file (defaults if missing or invalid)
    config = load_config()

    # Save configuration
    save_config(config)
"""

from __future__ import annotations

__all__ = [
    "AppConfig",
    "AssistantConfig",
    "DevServerConfig",
    "LoggingConfig",
    "ServerConfig",
    "ShellConfig",
    "SupervisorConfig",
    "get_app_dir",
    "get_config_path",
    "get_log_dir",
    "get_system_log_path",
    "load_config",
    "load_config_strict",
    "save_config",
]

import json
import logging
import os
import sys
from pathlib import Path
from typing import Literal

import click
from pydantic import BaseModel, Field, ValidationError

from procmux.constants import (
    APP_NAME,
    DEFAULT_ASSISTANT_EXECUTABLE,
    DEFAULT_ASSISTANT_MODEL,
    DEFAULT_COLS,
    DEFAULT_DEVSERVER_RUNNER,
    DEFAULT_GRACE_PERIOD_SECONDS,
    DEFAULT_HOST,
    DEFAULT_OUTBOUND_QUEUE_SIZE,
    DEFAULT_PORT,
    DEFAULT_READ_CHUNK_SIZE,
    DEFAULT_READINESS_TIMEOUT_SECONDS,
    DEFAULT_ROWS,
    DEFAULT_TERM,
)
from procmux.exceptions import ConfigurationError

_logger = logging.getLogger(f"{APP_NAME}.config")


def _get_platform_log_dir() -> str:
    """Get platform-appropriate base log directory following OS conventions.

    Returns:
        Platform-specific base log directory path (unexpanded).

    Platform conventions:
        - macOS: ~/Library/Logs
        - Linux: $XDG_STATE_HOME, falling back to ~/.local/state
        - Windows: ~/AppData/Local
    """
    if sys.platform == "darwin":
        return "~/Library/Logs"
    elif sys.platform == "win32":
        return "~/AppData/Local"
    return os.environ.get("XDG_STATE_HOME", "~/.local/state")


DEFAULT_LOG_DIR = _get_platform_log_dir()


class ServerConfig(BaseModel):
    """HTTP/WebSocket server settings.

    Attributes:
        host: Interface to bind.
        port: TCP port to listen on.
        outbound_queue_size: Per-connection send queue capacity.
    """

    host: str = Field(default=DEFAULT_HOST, min_length=1, description="Bind address")
    port: int = Field(default=DEFAULT_PORT, ge=1024, le=65535, description="Listen port")
    outbound_queue_size: int = Field(
        default=DEFAULT_OUTBOUND_QUEUE_SIZE,
        ge=1,
        description="Per-connection outbound queue capacity",
    )

    model_config = {"extra": "ignore"}


class LoggingConfig(BaseModel):
    """Logging settings.

    Attributes:
        log_dir: Base directory; system log goes to <log_dir>/procmux/system.jsonl.
        log_level: INFO for normal operation, DEBUG for per-chunk tracing.
    """

    log_dir: str = Field(default=DEFAULT_LOG_DIR, min_length=1, description="Base log directory")
    log_level: Literal["DEBUG", "INFO"] = Field(default="INFO", description="Log verbosity")

    model_config = {"extra": "ignore"}


class SupervisorConfig(BaseModel):
    """Process supervision settings."""

    grace_period_seconds: float = Field(
        default=DEFAULT_GRACE_PERIOD_SECONDS,
        gt=0,
        le=60,
        description="Delay between SIGTERM and SIGKILL",
    )
    read_chunk_size: int = Field(default=DEFAULT_READ_CHUNK_SIZE, ge=256, description="Output read size")

    model_config = {"extra": "ignore"}


class ShellConfig(BaseModel):
    """Interactive shell settings.

    Attributes:
        command: Shell argv. None uses $SHELL, falling back to /bin/bash.
        default_cols: Terminal width when the client does not send one.
        default_rows: Terminal height when the client does not send one.
        term: TERM value exported to the shell.
    """

    command: list[str] | None = Field(default=None, description="Shell argv override")
    default_cols: int = Field(default=DEFAULT_COLS, ge=1, le=1000)
    default_rows: int = Field(default=DEFAULT_ROWS, ge=1, le=1000)
    term: str = Field(default=DEFAULT_TERM, min_length=1)

    model_config = {"extra": "ignore"}


class AssistantConfig(BaseModel):
    """Assistant CLI settings.

    Attributes:
        executable: CLI executable (resolved on PATH).
        default_model: Model passed to fresh sessions.
        disconnect_policy: What happens to a running session when its
            connection goes away. "detach" keeps it running so it can be
            resumed or re-attached; "terminate" interrupts it.
        history_dir: Directory for JSONL session history. None disables history.
    """

    executable: str = Field(default=DEFAULT_ASSISTANT_EXECUTABLE, min_length=1)
    default_model: str = Field(default=DEFAULT_ASSISTANT_MODEL, min_length=1)
    disconnect_policy: Literal["detach", "terminate"] = Field(default="detach")
    history_dir: str | None = Field(default=None, description="Session history directory")

    model_config = {"extra": "ignore"}


class DevServerConfig(BaseModel):
    """Project dev-server settings.

    Attributes:
        runner: Command prefix; the script name is appended.
        readiness_timeout_seconds: Time before a server with no detected
            port is considered running.
        projects_root: Base directory for relative project identifiers.
    """

    runner: list[str] = Field(default_factory=lambda: list(DEFAULT_DEVSERVER_RUNNER), min_length=1)
    readiness_timeout_seconds: float = Field(default=DEFAULT_READINESS_TIMEOUT_SECONDS, gt=0, le=300)
    projects_root: str | None = Field(default=None)

    model_config = {"extra": "ignore"}


class AppConfig(BaseModel):
    """Top-level procmux configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    shell: ShellConfig = Field(default_factory=ShellConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    devserver: DevServerConfig = Field(default_factory=DevServerConfig)

    model_config = {"extra": "ignore"}  # Ignore unknown fields for forward compat


def get_app_dir() -> Path:
    """Get the OS-appropriate application directory.

    Uses click.get_app_dir() which returns:
    - macOS: ~/Library/Application Support/procmux
    - Linux: ~/.config/procmux (XDG compliant)
    - Windows: C:\\Users\\<user>\\AppData\\Roaming\\procmux
    """
    return Path(click.get_app_dir(APP_NAME))


def get_config_path() -> Path:
    """Get the full path to the config file."""
    return get_app_dir() / "config.json"


def get_log_dir(config: AppConfig) -> Path:
    """Get procmux log directory (<log_dir>/procmux/)."""
    return Path(config.logging.log_dir).expanduser() / APP_NAME


def get_system_log_path(config: AppConfig) -> Path:
    """Get full path to the system log file."""
    return get_log_dir(config) / "system.jsonl"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from file.

    If the config file doesn't exist, returns default configuration.
    Invalid JSON or validation errors return default config with a warning.

    Args:
        path: Config file path. Defaults to get_config_path().

    Returns:
        AppConfig: Loaded or default configuration.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        return AppConfig()

    try:
        with config_path.open(encoding="utf-8") as f:
            data = json.load(f)
        return AppConfig.model_validate(data)
    except json.JSONDecodeError as e:
        _logger.warning(
            {
                "event": "config_invalid_json",
                "message": f"Invalid JSON in config, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"config_path": str(config_path)},
            }
        )
        return AppConfig()
    except ValidationError as e:
        _logger.warning(
            {
                "event": "config_validation_failed",
                "message": f"Invalid config values, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"config_path": str(config_path)},
            }
        )
        return AppConfig()
    except OSError as e:
        _logger.warning(
            {
                "event": "config_read_failed",
                "message": f"Failed to read config file, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"config_path": str(config_path)},
            }
        )
        return AppConfig()


def load_config_strict(path: Path) -> AppConfig:
    """Load configuration, raising on any error.

    Used when the operator names a config file explicitly; a typo there
    should stop startup rather than silently fall back to defaults.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config in {path}: {e}") from e


def save_config(config: AppConfig, path: Path | None = None) -> Path:
    """Save configuration to file.

    Creates the config directory if it doesn't exist.

    Returns:
        Path the config was written to.

    Raises:
        OSError: If unable to write config file.
    """
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with config_path.open("w", encoding="utf-8") as f:
        json.dump(config.model_dump(), f, indent=2)
        f.write("\n")

    return config_path
