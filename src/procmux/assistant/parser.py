"""Parsing of assistant CLI output.

The CLI runs with ``--output-format stream-json`` and writes one JSON record
per stdout line. Anything else on stdout, and everything on stderr, is plain
text: spinner/status lines, warnings, or an interactive prompt waiting for a
keypress.
"""

from __future__ import annotations

__all__ = [
    "ParsedLine",
    "RecordKind",
    "classify_record",
    "is_interactive_prompt",
    "is_status_text",
    "parse_line",
    "parse_status_text",
]

import json
import re
from dataclasses import dataclass
from typing import Any, Literal

from procmux.utils.text import strip_ansi

RecordKind = Literal["assistant", "tool-use", "status", "result", "response"]

_STATUS_GLYPHS = ("✻", "✹", "✸", "✶", "⚒")
_TOKENS_PATTERN = re.compile(r"⚒\s*(\d+)\s*tokens")
_ACTION_PATTERN = re.compile(r"[✻✹✸✶]\s*(\w+)")
_NUMBERED_CHOICE = re.compile(r"^\s*\d+\.\s+\w+", re.MULTILINE)

INTERRUPT_HINT = "esc to interrupt"


@dataclass(frozen=True)
class ParsedLine:
    """One stdout line.

    kind:
        "record"    a JSON object from the stream-json protocol
        "text"      plain text
        "malformed" looked like JSON but did not parse to an object
    """

    kind: Literal["record", "text", "malformed"]
    text: str
    record: dict[str, Any] | None = None


def parse_line(line: str) -> ParsedLine | None:
    """Parse one stdout line. Blank lines yield None."""
    stripped = line.strip()
    if not stripped:
        return None
    if stripped[0] not in "{[":
        return ParsedLine(kind="text", text=stripped)
    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError:
        return ParsedLine(kind="malformed", text=stripped)
    if not isinstance(payload, dict):
        return ParsedLine(kind="malformed", text=stripped)
    return ParsedLine(kind="record", text=stripped, record=payload)


def classify_record(record: dict[str, Any]) -> RecordKind:
    """Map a stream-json record to the envelope type that carries it."""
    record_type = record.get("type")
    if record_type in ("status", "progress"):
        return "status"
    if record_type == "system" and record.get("subtype") == "status":
        return "status"
    if record_type == "result":
        return "result"
    if record_type == "assistant":
        message = record.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if isinstance(content, list) and any(
            isinstance(block, dict) and block.get("type") == "tool_use" for block in content
        ):
            return "tool-use"
        return "assistant"
    return "response"


def is_status_text(text: str) -> bool:
    """Whether a plain-text line is the CLI's spinner/status line."""
    clean = strip_ansi(text)
    return any(glyph in clean for glyph in _STATUS_GLYPHS) or "tokens" in clean or INTERRUPT_HINT in clean


def parse_status_text(text: str) -> tuple[str, int | None]:
    """Extract (action, token count) from a status line.

    Example:
        >>> parse_status_text("✻ Thinking… (⚒ 412 tokens · esc to interrupt)")
        ('Thinking', 412)
    """
    clean = strip_ansi(text)
    tokens_match = _TOKENS_PATTERN.search(clean)
    action_match = _ACTION_PATTERN.search(clean)
    tokens = int(tokens_match.group(1)) if tokens_match else None
    action = action_match.group(1) if action_match else "Working"
    return action, tokens


def is_interactive_prompt(text: str) -> bool:
    """Whether unterminated output looks like the CLI waiting for input."""
    clean = strip_ansi(text).rstrip()
    if not clean:
        return False
    return (
        "Do you want to" in clean
        or clean.endswith(("?", ">", "❯"))
        or bool(_NUMBERED_CHOICE.search(clean))
    )
