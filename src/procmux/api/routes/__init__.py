"""API route modules.

Route organization:
- status: Health and live process counts
- servers: Dev-server status, scripts, start and stop
"""

from . import servers, status

__all__ = ["servers", "status"]
