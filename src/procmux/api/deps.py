"""Shared dependencies for API routes.

Usage with Annotated:
    from procmux.api.deps import DevServersDep

    @router.get("")
    async def get_status(devservers: DevServersDep, project_path: str) -> StatusInfo:
        ...
"""

from __future__ import annotations

__all__ = [
    # Dependency functions
    "get_devservers",
    "get_services",
    # Type aliases for Annotated pattern
    "DevServersDep",
    "ServicesDep",
]

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request

if TYPE_CHECKING:
    from procmux.devserver import DevServerManager
    from procmux.services import Services


def get_services(request: Request) -> "Services":
    """Get Services from app.state.

    Raises HTTPException 503 if not available.
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not available. Server may still be starting.")
    return services


def get_devservers(request: Request) -> "DevServerManager":
    return get_services(request).devservers


ServicesDep = Annotated["Services", Depends(get_services)]
DevServersDep = Annotated["DevServerManager", Depends(get_devservers)]
