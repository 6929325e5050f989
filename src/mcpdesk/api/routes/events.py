"""Host event routes."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from mcpdesk.api.deps import get_event_bus
from mcpdesk.api.schemas.events import HostEventResponse, HostEventsResponse
from mcpdesk.core.event_bus import HostEventBus
from mcpdesk.models.events import HostEvent

router = APIRouter(prefix="/api/v1/events", tags=["events"])


def _as_response(event: HostEvent) -> HostEventResponse:
    return HostEventResponse(
        id=event.id,
        name=event.name,
        payload=event.payload,
        timestamp=event.timestamp,
    )


@router.get("", response_model=HostEventsResponse)
async def list_host_events(
    name: str | None = None,
    limit: int | None = Query(default=None, ge=0),
    bus: HostEventBus = Depends(get_event_bus),
) -> HostEventsResponse:
    return HostEventsResponse(
        items=[_as_response(event) for event in bus.list_events(name=name, limit=limit)]
    )


@router.websocket("/ws")
async def stream_host_events(websocket: WebSocket) -> None:
    bus: HostEventBus = websocket.app.state.event_bus
    async with bus.subscribe() as queue:
        await websocket.accept()
        sender = asyncio.create_task(_forward(websocket, queue))
        receiver = asyncio.create_task(_drain(websocket))
        try:
            await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sender.cancel()
            receiver.cancel()
            await asyncio.gather(sender, receiver, return_exceptions=True)


async def _forward(websocket: WebSocket, queue: asyncio.Queue[HostEvent]) -> None:
    while True:
        event = await queue.get()
        await websocket.send_json(_as_response(event).model_dump(mode="json"))


async def _drain(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return
