"""API client helper for CLI commands that need data from a running server.

Runtime commands (status, servers) call the server's HTTP API on the
configured host and port. File-based commands (config show) read files
directly instead.
"""

from __future__ import annotations

__all__ = [
    "APIRequestError",
    "ServerNotRunningError",
    "api_request",
]

import json
import time
from typing import Any

import click
import httpx

from procmux.constants import DEFAULT_HTTP_TIMEOUT_SECONDS


class ServerNotRunningError(click.ClickException):
    """Raised when nothing answers on the server's address."""

    def __init__(self, base_url: str) -> None:
        super().__init__(f"procmux is not running at {base_url}.\nStart it with: procmux serve")
        self.base_url = base_url


class APIRequestError(click.ClickException):
    """Raised when an API request fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        if status_code:
            super().__init__(f"API error ({status_code}): {message}")
        else:
            super().__init__(f"API error: {message}")
        self.status_code = status_code


def _error_message(response: httpx.Response) -> str:
    """Extract the message from a structured error response."""
    try:
        detail = response.json().get("detail", response.text)
    except (json.JSONDecodeError, AttributeError):
        return response.text or f"HTTP {response.status_code}"
    if isinstance(detail, dict):
        return str(detail.get("message", detail))
    return str(detail)


def api_request(
    method: str,
    endpoint: str,
    *,
    base_url: str,
    json_data: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    max_retries: int = 3,
    backoff_ms: int = 100,
) -> dict[str, Any] | list[Any]:
    """Make an API request to a running server.

    Retries connection failures with exponential backoff, for the case of a
    command run right after ``procmux serve``.

    Args:
        method: HTTP method.
        endpoint: API path, e.g. "/api/status".
        base_url: Server root, e.g. "http://127.0.0.1:8765".
        json_data: Optional JSON body.
        params: Optional query parameters.
        timeout: Request timeout in seconds.
        max_retries: Maximum connection attempts.
        backoff_ms: Initial backoff in milliseconds (doubles each retry).

    Returns:
        Parsed JSON response.

    Raises:
        ServerNotRunningError: Connection refused on every attempt.
        APIRequestError: The server answered with an error status.
    """
    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            with httpx.Client(base_url=base_url, timeout=timeout) as client:
                response = client.request(method, endpoint, json=json_data, params=params)
                response.raise_for_status()

                if response.status_code == 204:
                    return {}

                result = response.json()
                if isinstance(result, (dict, list)):
                    return result
                return {"value": result}

        except httpx.ConnectError as e:
            last_error = e
            if attempt < max_retries - 1:
                # Exponential backoff: 100ms, 200ms, 400ms
                time.sleep(backoff_ms / 1000 * (2**attempt))
            continue

        except httpx.HTTPStatusError as e:
            # Real error from the server, don't retry
            raise APIRequestError(_error_message(e.response), e.response.status_code) from e

        except httpx.HTTPError as e:
            raise APIRequestError(str(e)) from e

    raise ServerNotRunningError(base_url) from last_error
