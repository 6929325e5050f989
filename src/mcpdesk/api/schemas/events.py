"""Host event API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class HostEventResponse(BaseModel):
    """Event record payload."""

    id: str
    name: str
    payload: Any
    timestamp: datetime


class HostEventsResponse(BaseModel):
    """Collection of host events."""

    items: list[HostEventResponse]
