"""Dev-server API endpoints.

Provides:
- GET / - Status of one project's dev server
- GET /scripts - Scripts available in a project's manifest
- POST /start - Start a script (idempotent while running)
- POST /stop - Stop a project's dev server
"""

__all__ = ["router"]

from fastapi import APIRouter, Query

from procmux.api.deps import DevServersDep
from procmux.api.errors import APIError, ErrorCode
from procmux.api.schemas import ScriptsResponse, StartServerRequest, StopServerRequest
from procmux.devserver.manager import SCRIPT_NOT_FOUND
from procmux.exceptions import ProjectNotFoundError
from procmux.models import StartResult, StatusInfo, StopResult

router = APIRouter()


@router.get("")
async def get_server_status(
    devservers: DevServersDep,
    project_path: str = Query(min_length=1),
) -> StatusInfo:
    """Get the dev-server status of a project ("stopped" when untracked)."""
    return devservers.status(project_path)


@router.get("/scripts")
async def list_scripts(
    devservers: DevServersDep,
    project_path: str = Query(min_length=1),
) -> ScriptsResponse:
    """List runnable scripts.

    Raises:
        APIError: 404 if the project does not resolve.
    """
    try:
        scripts = devservers.available_scripts(project_path)
    except ProjectNotFoundError as e:
        raise APIError(
            status_code=404,
            code=ErrorCode.PROJECT_NOT_FOUND,
            message=str(e),
            details={"project_path": project_path},
        ) from e
    return ScriptsResponse(project_path=project_path, scripts=scripts)


@router.post("/start")
async def start_server(devservers: DevServersDep, body: StartServerRequest) -> StartResult:
    """Start a script in a project.

    Raises:
        APIError: 400 if the script is unknown or the server failed to start.
    """
    result = await devservers.start(body.project_path, body.script)
    if not result.success:
        code = (
            ErrorCode.DEVSERVER_SCRIPT_NOT_FOUND
            if result.error == SCRIPT_NOT_FOUND
            else ErrorCode.DEVSERVER_START_FAILED
        )
        raise APIError(
            status_code=400,
            code=code,
            message=result.error or "Failed to start dev server",
            details={"project_path": body.project_path, "script": body.script},
        )
    return result


@router.post("/stop")
async def stop_server(devservers: DevServersDep, body: StopServerRequest) -> StopResult:
    """Stop a project's dev server, or clear its retained error."""
    return await devservers.stop(body.project_path)
