"""Interactive PTY shells, one per connection."""

from .handler import ShellHandler
from .manager import ShellManager, ShellSession

__all__ = ["ShellHandler", "ShellManager", "ShellSession"]
