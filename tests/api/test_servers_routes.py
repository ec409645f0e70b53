"""Tests for the dev-server API routes."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from procmux.api.app import create_app
from procmux.devserver.manager import SCRIPT_NOT_FOUND
from procmux.exceptions import ProjectNotFoundError
from procmux.models import DevServerStatus, StartResult, StatusInfo, StopResult


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def devservers() -> MagicMock:
    manager = MagicMock()
    manager.start = AsyncMock()
    manager.stop = AsyncMock()
    return manager


@pytest.fixture
def client(devservers: MagicMock) -> TestClient:
    services = MagicMock()
    services.devservers = devservers
    return TestClient(create_app(services))


# =============================================================================
# Tests
# =============================================================================


class TestGetStatus:
    """Tests for GET /api/servers."""

    def test_returns_status(self, client: TestClient, devservers: MagicMock):
        devservers.status.return_value = StatusInfo(
            project_path="/srv/app", status=DevServerStatus.RUNNING, script="dev", url="http://localhost:5173"
        )

        response = client.get("/api/servers", params={"project_path": "/srv/app"})

        assert response.status_code == 200
        assert response.json()["url"] == "http://localhost:5173"
        devservers.status.assert_called_once_with("/srv/app")

    def test_project_path_required(self, client: TestClient):
        response = client.get("/api/servers")

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert detail["message"].startswith("project_path:")


class TestListScripts:
    """Tests for GET /api/servers/scripts."""

    def test_lists_scripts(self, client: TestClient, devservers: MagicMock):
        devservers.available_scripts.return_value = ["dev", "build"]

        response = client.get("/api/servers/scripts", params={"project_path": "/srv/app"})

        assert response.status_code == 200
        assert response.json() == {"project_path": "/srv/app", "scripts": ["dev", "build"]}

    def test_unknown_project_is_404(self, client: TestClient, devservers: MagicMock):
        devservers.available_scripts.side_effect = ProjectNotFoundError("/srv/missing")

        response = client.get("/api/servers/scripts", params={"project_path": "/srv/missing"})

        assert response.status_code == 404
        detail = response.json()["detail"]
        assert detail["code"] == "PROJECT_NOT_FOUND"
        assert detail["message"] == "Project not found: /srv/missing"
        assert detail["details"] == {"project_path": "/srv/missing"}


class TestStartStop:
    """Tests for POST /api/servers/start and /api/servers/stop."""

    def test_start(self, client: TestClient, devservers: MagicMock):
        devservers.start.return_value = StartResult(
            success=True, status=StatusInfo(project_path="/srv/app", status=DevServerStatus.STARTING, script="dev")
        )

        response = client.post("/api/servers/start", json={"project_path": "/srv/app", "script": "dev"})

        assert response.status_code == 200
        assert response.json()["status"]["status"] == "starting"
        devservers.start.assert_awaited_once_with("/srv/app", "dev")

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (SCRIPT_NOT_FOUND, "DEVSERVER_SCRIPT_NOT_FOUND"),
            ("Failed to spawn npm: No such file or directory", "DEVSERVER_START_FAILED"),
        ],
    )
    def test_start_failure(self, client: TestClient, devservers: MagicMock, error: str, code: str):
        devservers.start.return_value = StartResult(success=False, error=error)

        response = client.post("/api/servers/start", json={"project_path": "/srv/app", "script": "dev"})

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == code
        assert detail["message"] == error
        assert detail["details"] == {"project_path": "/srv/app", "script": "dev"}

    def test_start_requires_script(self, client: TestClient, devservers: MagicMock):
        response = client.post("/api/servers/start", json={"project_path": "/srv/app"})

        assert response.status_code == 422
        assert response.json()["detail"]["message"] == "script: Field required"
        devservers.start.assert_not_awaited()

    def test_stop(self, client: TestClient, devservers: MagicMock):
        devservers.stop.return_value = StopResult(success=False, error="no dev server for project")

        response = client.post("/api/servers/stop", json={"project_path": "/srv/app"})

        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "no dev server for project"}
