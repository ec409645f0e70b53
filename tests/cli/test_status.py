"""Tests for the status command."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from procmux.cli import cli
from procmux.cli.api_client import ServerNotRunningError
from procmux.cli.commands.status import format_uptime
from procmux.config import AppConfig

STATUS_RESPONSE: dict[str, Any] = {
    "running": True,
    "pid": 4242,
    "uptime_seconds": 7260.0,
    "connections": {"/servers": 1, "/shell": 2, "/ws": 0},
    "shells": 2,
    "assistant_sessions": 1,
    "dev_servers": [
        {
            "project_path": "/srv/app",
            "status": "running",
            "script": "dev",
            "url": "http://localhost:5173",
            "pid": 99,
            "started_at": "2026-01-01T00:00:00+00:00",
            "error": None,
        },
        {
            "project_path": "/srv/api",
            "status": "error",
            "script": "start",
            "url": None,
            "pid": None,
            "started_at": "2026-01-01T00:00:00+00:00",
            "error": "Process exited unexpectedly (code=1, signal=None)",
        },
    ],
}


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def default_config():
    with patch("procmux.cli.commands.status.load_config", return_value=AppConfig()) as mock_load:
        yield mock_load


class TestStatusCommand:
    """Tests for procmux status."""

    def test_formatted_output(self, runner: CliRunner):
        with patch("procmux.cli.commands.status.api_request", return_value=STATUS_RESPONSE) as mock_api:
            result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0, result.output
        mock_api.assert_called_once_with("GET", "/api/status", base_url="http://127.0.0.1:8765")
        assert "procmux: Running" in result.output
        assert "PID: 4242" in result.output
        assert "Uptime: 2.0 hours" in result.output
        assert "/shell" in result.output
        assert "Shells: 2" in result.output
        assert "Assistant sessions: 1" in result.output
        assert "/srv/app [dev]" in result.output
        assert "http://localhost:5173" in result.output
        assert "Process exited unexpectedly" in result.output

    def test_json_output(self, runner: CliRunner):
        with patch("procmux.cli.commands.status.api_request", return_value=STATUS_RESPONSE):
            result = runner.invoke(cli, ["status", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output) == STATUS_RESPONSE

    def test_host_and_port_override_config(self, runner: CliRunner):
        with patch("procmux.cli.commands.status.api_request", return_value=STATUS_RESPONSE) as mock_api:
            runner.invoke(cli, ["status", "--host", "10.0.0.5", "--port", "9000"])

        assert mock_api.call_args.kwargs["base_url"] == "http://10.0.0.5:9000"

    def test_no_dev_servers(self, runner: CliRunner):
        response = {**STATUS_RESPONSE, "dev_servers": []}
        with patch("procmux.cli.commands.status.api_request", return_value=response):
            result = runner.invoke(cli, ["status"])

        assert "None tracked." in result.output

    def test_server_not_running(self, runner: CliRunner):
        with patch(
            "procmux.cli.commands.status.api_request",
            side_effect=ServerNotRunningError("http://127.0.0.1:8765"),
        ):
            result = runner.invoke(cli, ["status"])

        assert result.exit_code == 1
        assert "not running" in result.output
        assert "procmux serve" in result.output


class TestFormatUptime:
    """Tests for format_uptime."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (42, "42 seconds"),
            (90, "1.5 minutes"),
            (5400, "1.5 hours"),
            (172800, "2.0 days"),
        ],
    )
    def test_units(self, seconds: float, expected: str):
        assert format_uptime(seconds) == expected
