"""FastAPI app entrypoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from mcpdesk.api.routes.events import router as events_router
from mcpdesk.api.routes.mcp import router as mcp_router
from mcpdesk.api.routes.sync import router as sync_router
from mcpdesk.config import Settings, get_settings
from mcpdesk.core.event_bus import HostEventBus
from mcpdesk.logging_setup import configure_logging
from mcpdesk.mcp.registry import SessionRegistry
from mcpdesk.mcp.transport import SessionFactory
from mcpdesk.sync.server import ControlServer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await app.state.control_server.aclose()
    await app.state.session_registry.close_all()
    logger.info("mcpdesk backend shut down")


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: SessionFactory | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    event_bus = HostEventBus(max_events=settings.max_host_events)

    app = FastAPI(title="mcpdesk API", version="0.1.0", lifespan=_lifespan)
    app.state.settings = settings
    app.state.event_bus = event_bus
    app.state.session_registry = SessionRegistry(
        factory=session_factory,
        connect_timeout_seconds=settings.connect_timeout_seconds,
        request_timeout_seconds=settings.request_timeout_seconds,
    )
    app.state.control_server = ControlServer(event_bus, host=settings.sync_bind_host)

    app.include_router(mcp_router)
    app.include_router(sync_router)
    app.include_router(events_router)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def run() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )
