"""Settings sync server routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from mcpdesk.api.deps import get_control_server
from mcpdesk.api.schemas.sync import StartSyncRequest, StartSyncResponse, SyncStatusResponse
from mcpdesk.sync.server import (
    ControlServer,
    ControlServerAlreadyRunningError,
    ControlServerBindError,
    ControlServerNotRunningError,
    ControlServerShutdownError,
)

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


@router.post("/start", response_model=StartSyncResponse)
async def start_sync_server(
    request: StartSyncRequest,
    server: ControlServer = Depends(get_control_server),
) -> StartSyncResponse:
    try:
        url = await server.start(request.settings)
    except ControlServerAlreadyRunningError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ControlServerBindError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return StartSyncResponse(url=url)


@router.post("/stop", status_code=status.HTTP_204_NO_CONTENT)
async def stop_sync_server(server: ControlServer = Depends(get_control_server)) -> None:
    try:
        await server.stop()
    except ControlServerNotRunningError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ControlServerShutdownError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc


@router.get("/status", response_model=SyncStatusResponse)
async def sync_server_status(
    server: ControlServer = Depends(get_control_server),
) -> SyncStatusResponse:
    current = server.status()
    return SyncStatusResponse(running=current.running, url=current.url)
