"""Per-project dev servers: lifecycle, readiness detection and log fan-out."""

from .detection import ReadinessDetector, RegexPortDetector
from .handler import DevServerCommands, ServersHandler
from .manager import DevServerManager, DevServerRecord

__all__ = [
    "DevServerCommands",
    "DevServerManager",
    "DevServerRecord",
    "ReadinessDetector",
    "RegexPortDetector",
    "ServersHandler",
]
