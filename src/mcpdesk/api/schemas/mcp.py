"""MCP session API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from mcpdesk.mcp.transport import TransportKind


class ConnectSessionRequest(BaseModel):
    """Open (or replace) one MCP session."""

    id: str = Field(min_length=1)
    url: str = Field(min_length=1)
    transport: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)


class SessionResponse(BaseModel):
    """Registered MCP session."""

    id: str
    url: str
    transport: TransportKind
    connected_at: datetime


class SessionsResponse(BaseModel):
    """Collection of registered sessions."""

    items: list[SessionResponse]


class CallToolRequest(BaseModel):
    """Invoke one tool on a session."""

    name: str = Field(min_length=1)
    arguments: Any = Field(default_factory=dict)
    timeout_seconds: float | None = Field(default=None, gt=0)
