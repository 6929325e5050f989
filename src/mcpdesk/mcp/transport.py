"""MCP transport selection and the default SDK-backed session factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import timedelta
from enum import StrEnum
from typing import Any, Protocol, cast
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

SSE_PATH_MARKER = "/sse"


class TransportKind(StrEnum):
    """Wire transports an MCP endpoint can be reached over."""

    SSE = "sse"
    STREAMABLE_HTTP = "streamable-http"


_HINTS: dict[str, TransportKind] = {
    "sse": TransportKind.SSE,
    "http": TransportKind.STREAMABLE_HTTP,
    "streamable-http": TransportKind.STREAMABLE_HTTP,
}


def parse_transport_hint(hint: str | None) -> TransportKind | None:
    """Map a caller hint to a transport, or None when it is not recognized."""
    if hint is None:
        return None
    return _HINTS.get(hint.strip().lower())


def select_transport(url: str, hint: str | None = None) -> TransportKind:
    """Pick the transport for `url`.

    A recognized hint always wins. Unrecognized hints are ignored and the
    URL heuristic applies: a path containing `/sse` means SSE, anything
    else means streamable HTTP.
    """
    explicit = parse_transport_hint(hint)
    if explicit is not None:
        return explicit
    if hint is not None:
        logger.debug("Ignoring unknown transport hint %r for %s", hint, url)

    try:
        path = urlsplit(url).path
    except ValueError:
        path = url
    if SSE_PATH_MARKER in path:
        return TransportKind.SSE
    return TransportKind.STREAMABLE_HTTP


class MCPSession(Protocol):
    """Minimal MCP SDK client session surface used by the registry."""

    async def initialize(self) -> Any:
        """Run MCP initialize handshake."""

    async def list_tools(self, cursor: str | None = None) -> Any:
        """List the tools the server exposes."""

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        read_timeout_seconds: timedelta | None = None,
        progress_callback: Any | None = None,
        *,
        meta: dict[str, Any] | None = None,
    ) -> Any:
        """Call one tool via MCP SDK."""


class SessionFactory(Protocol):
    """Factory for endpoint-bound MCP session contexts."""

    def __call__(
        self,
        url: str,
        transport: TransportKind,
    ) -> AbstractAsyncContextManager[MCPSession]:
        """Return async context manager for one endpoint session."""


@asynccontextmanager
async def open_sdk_session(url: str, transport: TransportKind) -> AsyncIterator[MCPSession]:
    """Open an MCP SDK `ClientSession` over the chosen transport.

    The handshake is not performed here; callers run `initialize()`.
    """
    from mcp.client.session import ClientSession

    if transport is TransportKind.SSE:
        from mcp.client.sse import sse_client

        async with sse_client(url) as (read, write):
            async with ClientSession(read, write) as session:
                yield cast(MCPSession, session)
        return

    from mcp.client.streamable_http import streamablehttp_client

    async with streamablehttp_client(url=url) as (read, write, _):
        async with ClientSession(read, write) as session:
            yield cast(MCPSession, session)
