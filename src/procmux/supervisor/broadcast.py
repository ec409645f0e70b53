"""Non-blocking fan-out of envelopes to subscriber groups.

Group membership changes under a lock; sends iterate over a snapshot taken
under that lock and use each subscriber's non-blocking offer(), so a slow
subscriber misses envelopes instead of stalling the producing process.
"""

from __future__ import annotations

__all__ = ["BroadcastGroups", "Subscriber"]

import asyncio
import logging
from typing import Protocol

from procmux.constants import APP_NAME
from procmux.protocol.envelope import Envelope

_logger = logging.getLogger(f"{APP_NAME}.broadcast")


class Subscriber(Protocol):
    @property
    def id(self) -> str: ...

    def offer(self, envelope: Envelope) -> bool: ...


class BroadcastGroups:
    """Named groups of subscribers (one group per project, for example)."""

    def __init__(self) -> None:
        self._groups: dict[str, set[Subscriber]] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, key: str, subscriber: Subscriber) -> None:
        async with self._lock:
            self._groups.setdefault(key, set()).add(subscriber)

    async def unsubscribe(self, key: str, subscriber: Subscriber) -> None:
        async with self._lock:
            members = self._groups.get(key)
            if members is None:
                return
            members.discard(subscriber)
            if not members:
                del self._groups[key]

    async def unsubscribe_all(self, subscriber: Subscriber) -> list[str]:
        """Remove a subscriber from every group. Returns the groups it left."""
        left: list[str] = []
        async with self._lock:
            for key in list(self._groups):
                members = self._groups[key]
                if subscriber in members:
                    members.discard(subscriber)
                    left.append(key)
                    if not members:
                        del self._groups[key]
        return left

    def subscriber_count(self, key: str) -> int:
        return len(self._groups.get(key, ()))

    async def broadcast(self, key: str, envelope: Envelope) -> int:
        """Offer an envelope to every member of a group.

        Returns:
            Number of subscribers that accepted it.
        """
        async with self._lock:
            members = list(self._groups.get(key, ()))

        delivered = 0
        for subscriber in members:
            if subscriber.offer(envelope):
                delivered += 1
        if delivered < len(members):
            _logger.debug(
                {
                    "event": "broadcast_partial",
                    "message": f"Envelope '{envelope.type}' reached {delivered}/{len(members)} subscribers",
                    "details": {"group": key},
                }
            )
        return delivered
