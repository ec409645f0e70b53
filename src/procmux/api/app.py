"""FastAPI application: management API plus the WebSocket entry point.

Currently implements:
- Status API (/api/status) - uptime, connections, live process counts
- Dev-server API (/api/servers) - status, scripts, start, stop
- WebSocket routes dispatched by the connection router:
  /shell (PTY shells), /ws (assistant chat and server:* commands),
  /servers (dev-server status and log subscription)

For standalone development:
    uvicorn procmux.api.app:create_default_app --factory --port 8765
"""

from __future__ import annotations

__all__ = ["create_app", "create_default_app"]

import os

from fastapi import FastAPI, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from procmux import __version__
from procmux.config import load_config
from procmux.exceptions import UnknownRouteError
from procmux.services import Services, build_services

from .errors import (
    APIError,
    api_error_handler,
    http_exception_handler,
    validation_error_handler,
)
from .routes import servers, status
from .websocket import WebSocketTransport, handshake_from_websocket


def create_app(services: Services) -> FastAPI:
    """Create the FastAPI application.

    Args:
        services: Wired managers and connection router. Stored on
            app.state; the caller owns their shutdown.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="procmux",
        description="Process multiplexer for shells, assistant sessions and dev servers",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.services = services

    # CORS is off unless a separate frontend dev server needs it, e.g.
    # PROCMUX_CORS_ORIGINS="http://localhost:5173"
    cors_origins_env = os.environ.get("PROCMUX_CORS_ORIGINS", "").strip()
    if cors_origins_env:
        cors_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
            max_age=3600,
        )

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    app.include_router(status.router, prefix="/api", tags=["status"])
    app.include_router(servers.router, prefix="/api/servers", tags=["servers"])

    @app.websocket("/{path:path}")
    async def websocket_entry(websocket: WebSocket, path: str) -> None:
        """Hand every WebSocket to the connection router."""
        router = websocket.app.state.services.router
        try:
            await router.route(WebSocketTransport(websocket), handshake_from_websocket(websocket))
        except UnknownRouteError:
            # Already logged and closed by the router
            return

    return app


def create_default_app() -> FastAPI:
    """App factory for uvicorn --factory, built from the config file."""
    return create_app(build_services(load_config()))
