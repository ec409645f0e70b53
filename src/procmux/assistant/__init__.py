"""Assistant CLI sessions: argument building, output parsing and lifecycle."""

from .handler import ChatHandler
from .manager import AssistantManager, AssistantRun

__all__ = ["AssistantManager", "AssistantRun", "ChatHandler"]
