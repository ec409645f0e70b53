"""System logger for operational events.

Owns the procmux logger configuration (handlers, formatters).
Other modules get their own logger reference via:
    _logger = logging.getLogger(f"{APP_NAME}.supervisor")

Child loggers propagate to the "procmux" logger, which is the only one with
handlers. This module owns the configuration; others call _logger.<level>()
with a dict or use log_event().

Logging strategy:
- Console (stderr): INFO+ (DEBUG when configured) for operator visibility
- File (system.jsonl): the same records as JSONL, once config is loaded
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "configure_logging",
    "get_system_logger",
    "log_event",
    "reset_logging",
]

import logging
import sys

from procmux.config import AppConfig, get_system_log_path
from procmux.constants import APP_NAME
from procmux.models import SystemEvent
from procmux.utils.logging.iso_formatter import ISO8601Formatter
from procmux.utils.logging.logging_context import ContextFilter

_logger = logging.getLogger(APP_NAME)
_logger.setLevel(logging.INFO)
_logger.propagate = False

_file_handler_configured: bool = False


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Extracts the 'message' or 'event' field from dict messages.
    """

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
        else:
            msg = record.getMessage()
        connection_id = getattr(record, "connection_id", None)
        if connection_id:
            return f"{record.levelname}: [{connection_id}] {msg}"
        return f"{record.levelname}: {msg}"


def _stderr_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    handler.addFilter(ContextFilter())
    return handler


# Initialize with stderr-only until config is loaded
if not _logger.handlers:
    _logger.addHandler(_stderr_handler(logging.INFO))


def get_system_logger() -> logging.Logger:
    """Get the top-level procmux logger."""
    return _logger


def configure_logging(config: AppConfig) -> None:
    """Configure procmux logging from config.

    Sets up:
    - stderr handler at the configured level
    - JSONL file handler at <log_dir>/procmux/system.jsonl

    Safe to call more than once; the file handler is only added once.

    Args:
        config: Application configuration.
    """
    global _file_handler_configured

    level = logging.getLevelName(config.logging.log_level)
    _logger.setLevel(level)

    if _file_handler_configured:
        return

    for handler in _logger.handlers:
        handler.close()
    _logger.handlers.clear()
    _logger.addHandler(_stderr_handler(level))

    log_path = get_system_log_path(config)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass  # stderr will still work

    try:
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(ISO8601Formatter())
        file_handler.addFilter(ContextFilter())
        _logger.addHandler(file_handler)
        _file_handler_configured = True
    except OSError as e:
        log_event(
            logging.WARNING,
            SystemEvent(
                event="file_logging_failed",
                message="Failed to configure file logging",
                error_type=type(e).__name__,
                error_message=str(e),
                details={"log_path": str(log_path)},
            ),
        )


def reset_logging() -> None:
    """Drop all handlers and restore stderr-only logging."""
    global _file_handler_configured

    for handler in _logger.handlers:
        handler.close()
    _logger.handlers.clear()
    _logger.addHandler(_stderr_handler(logging.INFO))
    _logger.setLevel(logging.INFO)
    _file_handler_configured = False


def log_event(level: int, event: SystemEvent, logger: logging.Logger | None = None) -> None:
    """Log a SystemEvent at the specified level.

    Serializes the event to a dict (excluding None values) and logs it.
    The ISO8601Formatter adds the timestamp during serialization.

    Args:
        level: Logging level (e.g., logging.INFO, logging.WARNING).
        event: The event to log.
        logger: Module logger to emit through. Defaults to the procmux logger.
    """
    (logger or _logger).log(level, event.model_dump(exclude_none=True))
