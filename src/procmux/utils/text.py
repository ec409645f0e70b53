"""Text helpers for process output."""

from __future__ import annotations

__all__ = ["LineBuffer", "strip_ansi"]

import codecs
import re

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")


def strip_ansi(text: str) -> str:
    return _ANSI_ESCAPE.sub("", text)


class LineBuffer:
    """Splits a byte stream into decoded lines.

    Partial lines are held until their newline arrives; ``remainder``
    returns whatever is left when the stream ends.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        self._pending += self._decoder.decode(chunk)
        if "\n" not in self._pending:
            return []
        *lines, self._pending = self._pending.split("\n")
        return [line.rstrip("\r") for line in lines]

    def remainder(self) -> str:
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return tail
