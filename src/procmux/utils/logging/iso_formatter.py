"""JSONL formatter with ISO 8601 timestamps.

Structured (dict) messages are written as one JSON object per line, with the
timestamp as the first field. Plain string messages are wrapped as
{"message": ...}.
"""

from __future__ import annotations

__all__ = ["ISO8601Formatter"]

import json
import logging
from datetime import datetime, timezone
from typing import Any


class ISO8601Formatter(logging.Formatter):
    """Formatter producing JSONL entries with UTC ISO 8601 timestamps.

    Format: YYYY-MM-DDTHH:MM:SS.sssZ
    Example: 2026-03-04T10:48:37.123Z

    Correlation fields attached by ContextFilter (connection_id, route) are
    merged in unless the message already sets them.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        if isinstance(record.msg, dict):
            log_data: dict[str, Any] = dict(record.msg)
        else:
            log_data = {"message": record.getMessage()}

        log_entry: dict[str, Any] = {"time": timestamp, "level": record.levelname}
        for key in ("connection_id", "route"):
            value = getattr(record, key, None)
            if value is not None and key not in log_data:
                log_entry[key] = value
        log_entry.update(log_data)

        if record.exc_info and "traceback" not in log_entry:
            log_entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)
