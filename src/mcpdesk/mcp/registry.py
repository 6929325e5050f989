"""Registry of live MCP sessions keyed by caller-chosen ids."""

from __future__ import annotations

import asyncio
import logging

from mcpdesk.mcp.session import (
    JSONObject,
    JSONValue,
    SessionHandle,
    SessionInfo,
    SessionNotFoundError,
    connect_session,
)
from mcpdesk.mcp.transport import SessionFactory, select_transport

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Connect once, look up many, call concurrently.

    All reads and writes of the id map go through one `asyncio.Lock`. The
    lock is held only to look up or swap a handle; connecting and RPC calls
    run outside it, so slow servers never block other sessions.
    """

    def __init__(
        self,
        *,
        factory: SessionFactory | None = None,
        connect_timeout_seconds: float | None = None,
        request_timeout_seconds: float | None = None,
    ) -> None:
        self._sessions: dict[str, SessionHandle] = {}
        self._lock = asyncio.Lock()
        self._factory = factory
        self._connect_timeout_seconds = connect_timeout_seconds
        self._request_timeout_seconds = request_timeout_seconds

    async def connect(
        self,
        session_id: str,
        url: str,
        transport: str | None = None,
        *,
        timeout_seconds: float | None = None,
    ) -> SessionInfo:
        """Open a session and register it, replacing any session under the same id.

        A failed connect leaves the registry untouched. A replaced session is
        closed once it is no longer reachable through the registry.
        """
        kind = select_transport(url, transport)
        handle = await connect_session(
            session_id,
            url,
            kind,
            factory=self._factory,
            timeout_seconds=self._connect_timeout(timeout_seconds),
        )
        async with self._lock:
            previous = self._sessions.get(session_id)
            self._sessions[session_id] = handle
        if previous is not None:
            logger.info("Replacing MCP session %s (%s)", session_id, previous.url)
            await previous.aclose()
        return handle.info()

    async def disconnect(self, session_id: str) -> bool:
        """Close and forget one session. Returns False for unknown ids."""
        async with self._lock:
            handle = self._sessions.pop(session_id, None)
        if handle is None:
            return False
        await handle.aclose()
        logger.info("Disconnected MCP session %s", session_id)
        return True

    async def get(self, session_id: str) -> SessionInfo | None:
        async with self._lock:
            handle = self._sessions.get(session_id)
        return handle.info() if handle is not None else None

    async def list_sessions(self) -> list[SessionInfo]:
        async with self._lock:
            handles = list(self._sessions.values())
        return sorted((handle.info() for handle in handles), key=lambda item: item.session_id)

    async def list_tools(
        self,
        session_id: str,
        *,
        timeout_seconds: float | None = None,
    ) -> JSONObject:
        handle = await self._lookup(session_id)
        return await handle.list_tools(timeout_seconds=self._request_timeout(timeout_seconds))

    async def call_tool(
        self,
        session_id: str,
        name: str,
        arguments: JSONValue = None,
        *,
        timeout_seconds: float | None = None,
    ) -> JSONObject:
        handle = await self._lookup(session_id)
        return await handle.call_tool(
            name,
            arguments,
            timeout_seconds=self._request_timeout(timeout_seconds),
        )

    async def close_all(self) -> None:
        """Close every session; used when the host application shuts down."""
        async with self._lock:
            handles = list(self._sessions.values())
            self._sessions.clear()
        if handles:
            await asyncio.gather(*(handle.aclose() for handle in handles))
            logger.info("Closed %d MCP session(s)", len(handles))

    async def _lookup(self, session_id: str) -> SessionHandle:
        async with self._lock:
            handle = self._sessions.get(session_id)
        if handle is None:
            raise SessionNotFoundError(session_id)
        return handle

    def _connect_timeout(self, override: float | None) -> float | None:
        return override if override is not None else self._connect_timeout_seconds

    def _request_timeout(self, override: float | None) -> float | None:
        return override if override is not None else self._request_timeout_seconds
