"""Logging utilities: JSONL formatting and per-connection correlation context."""

from .iso_formatter import ISO8601Formatter
from .logging_context import ContextFilter, bind_connection_context, get_connection_id

__all__ = [
    "ContextFilter",
    "ISO8601Formatter",
    "bind_connection_context",
    "get_connection_id",
]
