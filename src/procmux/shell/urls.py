"""Detection of URLs that terminal programs ask to open in a browser.

The shell is started with BROWSER set to an echo of OPEN_URL_MARKER, so tools
that honour $BROWSER print the URL instead of trying to launch a browser on
the server. Common "open this URL" phrasings are recognised as well.
"""

from __future__ import annotations

__all__ = [
    "BROWSER_OVERRIDE",
    "OPEN_URL_MARKER",
    "find_open_urls",
    "rewrite_open_url_markers",
]

import re

OPEN_URL_MARKER = "OPEN_URL:"
BROWSER_OVERRIDE = f'echo "{OPEN_URL_MARKER}"'

_URL = r"(https?://[^\s\x1b\x07\"']+)"

_MARKER_PATTERN = re.compile(rf"{re.escape(OPEN_URL_MARKER)}\s*{_URL}")

_OPEN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"(?:xdg-open|open|start)\s+{_URL}"),
    _MARKER_PATTERN,
    re.compile(rf"Opening\s+{_URL}", re.IGNORECASE),
    re.compile(rf"Visit:\s*{_URL}", re.IGNORECASE),
    re.compile(rf"View at:\s*{_URL}", re.IGNORECASE),
    re.compile(rf"Browse to:\s*{_URL}", re.IGNORECASE),
)


def find_open_urls(text: str) -> list[str]:
    """URLs in ``text`` that a program asked to open, in first-seen order."""
    found: list[str] = []
    for pattern in _OPEN_PATTERNS:
        for match in pattern.finditer(text):
            url = match.group(1)
            if url not in found:
                found.append(url)
    return found


def rewrite_open_url_markers(text: str) -> str:
    """Replace raw marker lines with a readable notice."""
    return _MARKER_PATTERN.sub(lambda m: f"Opening in browser: {m.group(1)}", text)
