"""Event models delivered from the backend to the desktop host."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class HostEventName(StrEnum):
    """Event names the host subscribes to."""

    SYNC_SETTINGS_RECEIVED = "sync-settings-received"


class HostEvent(BaseModel):
    """One notification emitted to the host application."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    payload: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
