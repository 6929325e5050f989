"""MCP session routes."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, status

from mcpdesk.api.deps import get_session_registry
from mcpdesk.api.schemas.mcp import (
    CallToolRequest,
    ConnectSessionRequest,
    SessionResponse,
    SessionsResponse,
)
from mcpdesk.mcp.registry import SessionRegistry
from mcpdesk.mcp.session import JSONObject, SessionError, SessionInfo, SessionNotFoundError

router = APIRouter(prefix="/api/v1/mcp", tags=["mcp"])


def _as_response(info: SessionInfo) -> SessionResponse:
    return SessionResponse(
        id=info.session_id,
        url=info.url,
        transport=info.transport,
        connected_at=info.connected_at,
    )


def _raise_http(exc: SessionError) -> NoReturn:
    if isinstance(exc, SessionNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif exc.category == "timeout":
        code = status.HTTP_504_GATEWAY_TIMEOUT
    else:
        code = status.HTTP_502_BAD_GATEWAY
    raise HTTPException(status_code=code, detail=str(exc)) from exc


@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def connect_session(
    request: ConnectSessionRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionResponse:
    try:
        info = await registry.connect(
            request.id,
            request.url,
            request.transport,
            timeout_seconds=request.timeout_seconds,
        )
    except SessionError as exc:
        _raise_http(exc)
    return _as_response(info)


@router.get("/sessions", response_model=SessionsResponse)
async def list_sessions(
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionsResponse:
    return SessionsResponse(items=[_as_response(info) for info in await registry.list_sessions()])


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionResponse:
    info = await registry.get(session_id)
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return _as_response(info)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> None:
    if not await registry.disconnect(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")


@router.get("/sessions/{session_id}/tools", response_model=None)
async def list_session_tools(
    session_id: str,
    timeout_seconds: float | None = None,
    registry: SessionRegistry = Depends(get_session_registry),
) -> JSONObject:
    try:
        return await registry.list_tools(session_id, timeout_seconds=timeout_seconds)
    except SessionError as exc:
        _raise_http(exc)


@router.post("/sessions/{session_id}/tools/call", response_model=None)
async def call_session_tool(
    session_id: str,
    request: CallToolRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> JSONObject:
    try:
        return await registry.call_tool(
            session_id,
            request.name,
            request.arguments,
            timeout_seconds=request.timeout_seconds,
        )
    except SessionError as exc:
        _raise_http(exc)
