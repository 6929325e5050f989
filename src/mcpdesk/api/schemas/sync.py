"""Settings sync API schemas."""

from __future__ import annotations

from pydantic import BaseModel


class StartSyncRequest(BaseModel):
    """Initial settings document, as serialized JSON text."""

    settings: str


class StartSyncResponse(BaseModel):
    url: str


class SyncStatusResponse(BaseModel):
    running: bool
    url: str | None = None
