"""Server status API endpoint.

Provides:
- GET /status - Uptime, active connections and live process counts
"""

__all__ = ["router"]

from fastapi import APIRouter

from procmux.api.deps import ServicesDep
from procmux.models import ServerStatusResponse

router = APIRouter()


@router.get("/status")
async def get_status(services: ServicesDep) -> ServerStatusResponse:
    """Get current server status.

    Returns:
        ServerStatusResponse with pid, uptime, connection counts per path,
        live shells, live assistant runs and tracked dev servers.
    """
    return services.status()
