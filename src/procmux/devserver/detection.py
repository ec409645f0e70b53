"""Readiness detection for dev servers.

A detector looks at each chunk of server output and reports the port the
server announced, if any.
"""

from __future__ import annotations

__all__ = ["ReadinessDetector", "RegexPortDetector", "local_url"]

import re
from typing import Protocol

from procmux.utils.text import strip_ansi

_DEFAULT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"Local:\s+https?://localhost:(\d+)", re.IGNORECASE),
    re.compile(r"listening on port (\d+)", re.IGNORECASE),
    re.compile(r"Server running at https?://localhost:(\d+)", re.IGNORECASE),
    re.compile(r"https?://localhost:(\d+)", re.IGNORECASE),
)


class ReadinessDetector(Protocol):
    def detect(self, chunk: str) -> int | None: ...


class RegexPortDetector:
    """Finds the first announced port using an ordered list of patterns.

    ANSI colour codes are stripped first; dev tools colourise their banners.
    """

    def __init__(self, patterns: tuple[re.Pattern[str], ...] = _DEFAULT_PATTERNS) -> None:
        self._patterns = patterns

    def detect(self, chunk: str) -> int | None:
        clean = strip_ansi(chunk)
        for pattern in self._patterns:
            match = pattern.search(clean)
            if match:
                port = int(match.group(1))
                if 0 < port < 65536:
                    return port
        return None


def local_url(port: int) -> str:
    return f"http://localhost:{port}"
