"""Shared API dependency providers."""

from __future__ import annotations

from fastapi import Request

from mcpdesk.config import Settings
from mcpdesk.core.event_bus import HostEventBus
from mcpdesk.mcp.registry import SessionRegistry
from mcpdesk.sync.server import ControlServer


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.session_registry


def get_control_server(request: Request) -> ControlServer:
    return request.app.state.control_server


def get_event_bus(request: Request) -> HostEventBus:
    return request.app.state.event_bus
