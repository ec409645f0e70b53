"""Operational logging for procmux."""

from .system_logger import configure_logging, get_system_logger, log_event

__all__ = ["configure_logging", "get_system_logger", "log_event"]
