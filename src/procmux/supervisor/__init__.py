"""Process supervision: spawning, lifecycle tracking and output streams."""

from .broadcast import BroadcastGroups
from .process import (
    EventStream,
    ManagedProcess,
    ProcessEvent,
    ProcessSpec,
    ProcessState,
    ProcessSupervisor,
)
from .registry import KeyedRegistry

__all__ = [
    "BroadcastGroups",
    "EventStream",
    "KeyedRegistry",
    "ManagedProcess",
    "ProcessEvent",
    "ProcessSpec",
    "ProcessState",
    "ProcessSupervisor",
]
