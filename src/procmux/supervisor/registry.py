"""Keyed registries with per-key locks.

Each manager owns one KeyedRegistry. Start, stop and replace operations for
a key run under that key's asyncio.Lock, so a start racing a stop can never
leave two live processes for the same identity. A key's lock lives exactly
as long as some task holds or awaits it. Reads are lock-free; on a single
event loop a dict lookup cannot observe a half-applied update.
"""

from __future__ import annotations

__all__ = ["KeyedRegistry"]

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class KeyedRegistry(Generic[K, V]):
    """Mapping of identity -> live record, plus one lock per identity."""

    def __init__(self) -> None:
        self._items: dict[K, V] = {}
        self._locks: dict[K, _KeyLock] = {}

    @asynccontextmanager
    async def lock(self, key: K) -> AsyncIterator[None]:
        """Hold the lock guarding ``key`` for the duration of the block."""
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    def get(self, key: K) -> V | None:
        return self._items.get(key)

    def set(self, key: K, value: V) -> None:
        self._items[key] = value

    def pop(self, key: K) -> V | None:
        return self._items.pop(key, None)

    def rekey(self, old: K, new: K) -> None:
        """Move a record to a new identity (a lock held on ``old`` keeps guarding it)."""
        if old == new or old not in self._items:
            return
        self._items[new] = self._items.pop(old)

    def snapshot(self) -> list[tuple[K, V]]:
        return list(self._items.items())

    def values(self) -> list[V]:
        return list(self._items.values())

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)
