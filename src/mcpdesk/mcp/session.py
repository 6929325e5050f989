"""Live MCP client sessions and the errors they raise."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal, TypeAlias, cast

from mcpdesk.mcp.transport import MCPSession, SessionFactory, TransportKind, open_sdk_session

logger = logging.getLogger(__name__)

JSONValue: TypeAlias = None | bool | int | float | str | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]
ErrorCategory: TypeAlias = Literal[
    "not_found",
    "connect_failure",
    "rpc_failure",
    "invalid_payload",
    "session_closed",
    "timeout",
]

DEFAULT_CLOSE_TIMEOUT_SECONDS = 5.0


class SessionError(RuntimeError):
    """Base failure for session registry operations."""

    def __init__(self, message: str, *, category: ErrorCategory) -> None:
        super().__init__(message)
        self.category = category


class SessionNotFoundError(SessionError):
    """No session is registered under the requested id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}", category="not_found")
        self.session_id = session_id


class SessionConnectError(SessionError):
    """Transport could not be established or the handshake failed."""

    def __init__(self, message: str, *, category: ErrorCategory = "connect_failure") -> None:
        super().__init__(message, category=category)


class SessionRPCError(SessionError):
    """The MCP engine rejected or failed a request on a live session."""

    def __init__(self, message: str, *, category: ErrorCategory = "rpc_failure") -> None:
        super().__init__(message, category=category)


@dataclass(slots=True, frozen=True)
class SessionInfo:
    """Public view of one registered session."""

    session_id: str
    url: str
    transport: TransportKind
    connected_at: datetime


def describe_exception(exc: BaseException) -> str:
    """Human-readable cause, looking through single-member exception groups."""
    while isinstance(exc, BaseExceptionGroup) and len(exc.exceptions) == 1:
        exc = exc.exceptions[0]
    return str(exc) or type(exc).__name__


def to_json_object(value: Any) -> JSONObject:
    if hasattr(value, "model_dump"):
        payload = value.model_dump(mode="json", exclude_none=True)
    else:
        payload = value
    if not isinstance(payload, dict):
        msg = "Invalid MCP SDK response payload"
        raise SessionRPCError(msg, category="invalid_payload")
    if not all(isinstance(key, str) for key in payload):
        msg = "Invalid MCP SDK response keys"
        raise SessionRPCError(msg, category="invalid_payload")
    return cast(JSONObject, payload)


class SessionHandle:
    """One live MCP session, shareable across concurrent callers.

    The SDK transports run anyio task groups that must be entered and left
    from the same task, so every handle owns a runner task that opens the
    session, parks until `aclose()` and then unwinds the contexts. RPC calls
    from other tasks go straight to the SDK session, which correlates
    requests and responses itself.
    """

    def __init__(
        self,
        session_id: str,
        url: str,
        transport: TransportKind,
        *,
        factory: SessionFactory | None = None,
    ) -> None:
        self.session_id = session_id
        self.url = url
        self.transport = transport
        self.connected_at: datetime | None = None
        self._factory = factory or open_sdk_session
        self._session: MCPSession | None = None
        self._runner: asyncio.Task[None] | None = None
        self._ready: asyncio.Future[None] | None = None
        self._close_requested = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            url=self.url,
            transport=self.transport,
            connected_at=self.connected_at or datetime.now(UTC),
        )

    async def open(self, *, timeout_seconds: float | None = None) -> None:
        """Connect and run the MCP handshake. Single attempt, no retries."""
        if self._runner is not None:
            msg = f"Session {self.session_id} was already opened"
            raise SessionConnectError(msg)

        self._ready = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(
            self._run(self._ready),
            name=f"mcp-session:{self.session_id}",
        )
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), timeout_seconds)
        except TimeoutError as exc:
            await self._abort()
            msg = f"Timed out connecting to {self.url} after {timeout_seconds}s"
            raise SessionConnectError(msg, category="timeout") from exc
        except asyncio.CancelledError:
            await self._abort()
            raise
        except SessionError:
            await self._abort()
            raise
        except Exception as exc:  # noqa: BLE001
            await self._abort()
            raise SessionConnectError(describe_exception(exc)) from exc
        self.connected_at = datetime.now(UTC)
        logger.info(
            "Connected MCP session %s to %s over %s",
            self.session_id,
            self.url,
            self.transport.value,
        )

    async def list_tools(self, *, timeout_seconds: float | None = None) -> JSONObject:
        session = self._require_session()
        try:
            async with asyncio.timeout(timeout_seconds):
                result = await session.list_tools()
        except TimeoutError as exc:
            msg = f"tools/list timed out after {timeout_seconds}s"
            raise SessionRPCError(msg, category="timeout") from exc
        except Exception as exc:  # noqa: BLE001
            raise SessionRPCError(describe_exception(exc)) from exc
        return to_json_object(result)

    async def call_tool(
        self,
        name: str,
        arguments: JSONValue = None,
        *,
        timeout_seconds: float | None = None,
    ) -> JSONObject:
        session = self._require_session()
        tool_args = cast(dict[str, Any], arguments) if isinstance(arguments, dict) else None
        try:
            async with asyncio.timeout(timeout_seconds):
                result = await session.call_tool(name, tool_args)
        except TimeoutError as exc:
            msg = f"tools/call {name} timed out after {timeout_seconds}s"
            raise SessionRPCError(msg, category="timeout") from exc
        except Exception as exc:  # noqa: BLE001
            raise SessionRPCError(describe_exception(exc)) from exc
        return to_json_object(result)

    async def aclose(self, *, timeout_seconds: float = DEFAULT_CLOSE_TIMEOUT_SECONDS) -> None:
        """Release the session. Safe to call more than once."""
        runner = self._runner
        self._close_requested.set()
        if runner is None:
            self._closed = True
            return
        if not runner.done():
            _, pending = await asyncio.wait({runner}, timeout=timeout_seconds)
            if pending:
                logger.warning("MCP session %s did not close in time; cancelling", self.session_id)
                runner.cancel()
                await asyncio.wait({runner})
        self._consume_result(runner)
        self._closed = True

    async def _run(self, ready: asyncio.Future[None]) -> None:
        try:
            async with self._factory(self.url, self.transport) as session:
                await session.initialize()
                self._session = session
                ready.set_result(None)
                await self._close_requested.wait()
        except Exception as exc:  # noqa: BLE001
            if not ready.done():
                ready.set_exception(SessionConnectError(describe_exception(exc)))
            else:
                logger.warning(
                    "MCP session %s ended with error: %s",
                    self.session_id,
                    describe_exception(exc),
                )
        finally:
            self._session = None
            self._closed = True
            if not ready.done():
                ready.set_exception(SessionConnectError("Session task ended before connecting"))
            logger.debug("MCP session %s runner finished", self.session_id)

    async def _abort(self) -> None:
        runner = self._runner
        self._close_requested.set()
        if runner is not None and not runner.done():
            runner.cancel()
            await asyncio.wait({runner})
        if runner is not None:
            self._consume_result(runner)
        ready = self._ready
        if ready is not None and ready.done() and not ready.cancelled():
            ready.exception()
        self._closed = True

    @staticmethod
    def _consume_result(runner: asyncio.Task[None]) -> None:
        if runner.cancelled():
            return
        exc = runner.exception()
        if exc is not None:
            logger.warning("MCP session runner failed: %s", describe_exception(exc))

    def _require_session(self) -> MCPSession:
        session = self._session
        if session is None or self._closed:
            msg = f"Session {self.session_id} is closed"
            raise SessionRPCError(msg, category="session_closed")
        return session


async def connect_session(
    session_id: str,
    url: str,
    transport: TransportKind,
    *,
    factory: SessionFactory | None = None,
    timeout_seconds: float | None = None,
) -> SessionHandle:
    """Open one MCP session; raises `SessionConnectError` on any failure."""
    handle = SessionHandle(session_id, url, transport, factory=factory)
    await handle.open(timeout_seconds=timeout_seconds)
    return handle
