"""Tests for the CLI's HTTP client helper."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from procmux.cli.api_client import APIRequestError, ServerNotRunningError, api_request

BASE_URL = "http://127.0.0.1:8765"


def make_response(status_code: int, payload: object | None = None, text: str | None = None) -> httpx.Response:
    request = httpx.Request("GET", f"{BASE_URL}/api/status")
    if text is not None:
        return httpx.Response(status_code, text=text, request=request)
    return httpx.Response(status_code, json=payload, request=request)


@pytest.fixture
def mock_client():
    with patch("procmux.cli.api_client.httpx.Client") as mock_cls:
        client = MagicMock()
        mock_cls.return_value.__enter__.return_value = client
        yield client


@pytest.fixture
def mock_sleep():
    with patch("procmux.cli.api_client.time.sleep") as sleep:
        yield sleep


class TestApiRequest:
    """Tests for api_request."""

    def test_returns_json(self, mock_client: MagicMock):
        mock_client.request.return_value = make_response(200, {"running": True})

        assert api_request("GET", "/api/status", base_url=BASE_URL) == {"running": True}
        mock_client.request.assert_called_once_with("GET", "/api/status", json=None, params=None)

    def test_no_content(self, mock_client: MagicMock):
        mock_client.request.return_value = make_response(204, text="")

        assert api_request("POST", "/api/servers/stop", base_url=BASE_URL) == {}

    def test_connection_refused_retries_then_fails(self, mock_client: MagicMock, mock_sleep: MagicMock):
        mock_client.request.side_effect = httpx.ConnectError("refused")

        with pytest.raises(ServerNotRunningError) as exc_info:
            api_request("GET", "/api/status", base_url=BASE_URL)

        assert mock_client.request.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.1, 0.2]
        assert "not running" in str(exc_info.value.message)
        assert "procmux serve" in str(exc_info.value.message)

    def test_recovers_after_retry(self, mock_client: MagicMock, mock_sleep: MagicMock):
        mock_client.request.side_effect = [httpx.ConnectError("refused"), make_response(200, {"ok": 1})]

        assert api_request("GET", "/api/status", base_url=BASE_URL) == {"ok": 1}
        assert mock_sleep.call_count == 1

    def test_structured_error_message(self, mock_client: MagicMock, mock_sleep: MagicMock):
        payload = {"detail": {"code": "PROJECT_NOT_FOUND", "message": "Project not found: /srv/x"}}
        mock_client.request.return_value = make_response(404, payload)

        with pytest.raises(APIRequestError) as exc_info:
            api_request("GET", "/api/servers/scripts", base_url=BASE_URL)

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "API error (404): Project not found: /srv/x"
        mock_sleep.assert_not_called()

    def test_plain_text_error(self, mock_client: MagicMock):
        mock_client.request.return_value = make_response(502, text="Bad Gateway")

        with pytest.raises(APIRequestError) as exc_info:
            api_request("GET", "/api/status", base_url=BASE_URL)

        assert exc_info.value.message == "API error (502): Bad Gateway"

    def test_timeout_is_api_error(self, mock_client: MagicMock):
        mock_client.request.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(APIRequestError, match="timed out"):
            api_request("GET", "/api/status", base_url=BASE_URL)
