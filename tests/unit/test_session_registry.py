from __future__ import annotations

import asyncio

import pytest

from mcpdesk.mcp.registry import SessionRegistry
from mcpdesk.mcp.session import (
    SessionConnectError,
    SessionNotFoundError,
    SessionRPCError,
    describe_exception,
)
from mcpdesk.mcp.transport import TransportKind
from tests.support.mcp_fakes import FakeSessionFactory


@pytest.mark.asyncio
async def test_connect_registers_session_and_routes_calls_to_it() -> None:
    factory = FakeSessionFactory()
    registry = SessionRegistry(factory=factory)

    info = await registry.connect("alpha", "http://alpha.local/mcp")
    assert info.session_id == "alpha"
    assert info.transport is TransportKind.STREAMABLE_HTTP
    assert factory.opened == [("http://alpha.local/mcp", TransportKind.STREAMABLE_HTTP)]
    assert factory.sessions["session-1"].initialized is True

    tools = await registry.list_tools("alpha")
    assert tools["tools"][0]["description"] == "echo from session-1"

    result = await registry.call_tool("alpha", "echo", {"text": "hi"})
    assert result["structuredContent"] == {
        "session": "session-1",
        "tool": "echo",
        "arguments": {"text": "hi"},
    }
    await registry.close_all()


@pytest.mark.asyncio
async def test_sessions_are_isolated_by_id() -> None:
    registry = SessionRegistry(factory=FakeSessionFactory())
    await registry.connect("a", "http://a.local/sse")
    await registry.connect("b", "http://b.local/mcp")

    a = await registry.call_tool("a", "echo", {})
    b = await registry.call_tool("b", "echo", {})
    assert a["structuredContent"]["session"] == "session-1"
    assert b["structuredContent"]["session"] == "session-2"

    listed = await registry.list_sessions()
    assert [(item.session_id, item.transport) for item in listed] == [
        ("a", TransportKind.SSE),
        ("b", TransportKind.STREAMABLE_HTTP),
    ]
    await registry.close_all()


@pytest.mark.asyncio
async def test_connect_with_existing_id_replaces_and_closes_previous_session() -> None:
    factory = FakeSessionFactory()
    registry = SessionRegistry(factory=factory)

    await registry.connect("shared", "http://first.local/mcp")
    await registry.connect("shared", "http://second.local/sse")

    assert factory.closed == ["session-1"]
    result = await registry.call_tool("shared", "echo", {})
    assert result["structuredContent"]["session"] == "session-2"
    info = await registry.get("shared")
    assert info is not None
    assert info.url == "http://second.local/sse"
    assert info.transport is TransportKind.SSE
    await registry.close_all()


@pytest.mark.asyncio
async def test_failed_connect_leaves_registry_unchanged() -> None:
    factory = FakeSessionFactory(
        refuse={"http://down.local/mcp"},
        reject_handshake={"http://rude.local/mcp"},
    )
    registry = SessionRegistry(factory=factory)
    await registry.connect("keep", "http://up.local/mcp")

    with pytest.raises(SessionConnectError) as refused:
        await registry.connect("keep", "http://down.local/mcp")
    assert refused.value.category == "connect_failure"
    assert "connection refused" in str(refused.value)

    with pytest.raises(SessionConnectError) as rejected:
        await registry.connect("other", "http://rude.local/mcp")
    assert "handshake rejected" in str(rejected.value)

    sessions = await registry.list_sessions()
    assert [item.session_id for item in sessions] == ["keep"]
    result = await registry.call_tool("keep", "echo", {})
    assert result["structuredContent"]["session"] == "session-1"
    # the rejected handshake session was unwound by its runner
    assert factory.closed == ["session-2"]
    await registry.close_all()


@pytest.mark.asyncio
async def test_connect_timeout_is_reported_without_registering() -> None:
    factory = FakeSessionFactory(hang={"http://slow.local/mcp"})
    registry = SessionRegistry(factory=factory)

    with pytest.raises(SessionConnectError) as exc_info:
        await registry.connect("slow", "http://slow.local/mcp", timeout_seconds=0.05)
    assert exc_info.value.category == "timeout"
    assert await registry.get("slow") is None


@pytest.mark.asyncio
async def test_unknown_id_raises_not_found() -> None:
    registry = SessionRegistry(factory=FakeSessionFactory())

    with pytest.raises(SessionNotFoundError) as listed:
        await registry.list_tools("ghost")
    assert listed.value.category == "not_found"
    with pytest.raises(SessionNotFoundError):
        await registry.call_tool("ghost", "echo", {})


@pytest.mark.asyncio
async def test_rpc_errors_are_wrapped_with_cause() -> None:
    registry = SessionRegistry(factory=FakeSessionFactory())
    await registry.connect("alpha", "http://alpha.local/mcp")

    with pytest.raises(SessionRPCError) as exc_info:
        await registry.call_tool("alpha", "explode", {})
    assert exc_info.value.category == "rpc_failure"
    assert str(exc_info.value) == "tool exploded"
    await registry.close_all()


@pytest.mark.asyncio
async def test_call_timeout_uses_registry_default() -> None:
    registry = SessionRegistry(factory=FakeSessionFactory(), request_timeout_seconds=0.05)
    await registry.connect("alpha", "http://alpha.local/mcp")

    with pytest.raises(SessionRPCError) as exc_info:
        await registry.call_tool("alpha", "hang", {})
    assert exc_info.value.category == "timeout"
    # the session stays usable after a timed out call
    result = await registry.call_tool("alpha", "echo", {})
    assert result["isError"] is False
    await registry.close_all()


@pytest.mark.asyncio
async def test_non_object_arguments_are_passed_as_none() -> None:
    factory = FakeSessionFactory()
    registry = SessionRegistry(factory=factory)
    await registry.connect("alpha", "http://alpha.local/mcp")

    await registry.call_tool("alpha", "echo", ["not", "an", "object"])
    assert factory.sessions["session-1"].calls == [("echo", None)]
    await registry.close_all()


@pytest.mark.asyncio
async def test_concurrent_calls_on_one_session_do_not_serialize() -> None:
    callers = 5
    factory = FakeSessionFactory(gate=asyncio.Barrier(callers))
    registry = SessionRegistry(factory=factory)
    await registry.connect("shared", "http://shared.local/mcp")

    results = await asyncio.wait_for(
        asyncio.gather(
            *(registry.call_tool("shared", "rendezvous", {"n": n}) for n in range(callers))
        ),
        timeout=2.0,
    )
    assert sorted(result["structuredContent"]["arguments"]["n"] for result in results) == list(
        range(callers)
    )
    await registry.close_all()


@pytest.mark.asyncio
async def test_disconnect_and_close_all_release_sessions() -> None:
    factory = FakeSessionFactory()
    registry = SessionRegistry(factory=factory)
    await registry.connect("a", "http://a.local/mcp")
    await registry.connect("b", "http://b.local/mcp")
    await registry.connect("c", "http://c.local/mcp")

    assert await registry.disconnect("a") is True
    assert await registry.disconnect("a") is False
    assert factory.closed == ["session-1"]
    with pytest.raises(SessionNotFoundError):
        await registry.list_tools("a")

    await registry.close_all()
    assert sorted(factory.closed) == ["session-1", "session-2", "session-3"]
    assert await registry.list_sessions() == []


@pytest.mark.asyncio
async def test_calls_on_closed_handle_report_closed_session() -> None:
    factory = FakeSessionFactory()
    registry = SessionRegistry(factory=factory)
    await registry.connect("a", "http://a.local/mcp")
    handle = await registry._lookup("a")

    await registry.disconnect("a")
    with pytest.raises(SessionRPCError) as exc_info:
        await handle.list_tools()
    assert exc_info.value.category == "session_closed"


def test_describe_exception_unwraps_single_exception_groups() -> None:
    group = ExceptionGroup("task group", [ExceptionGroup("inner", [OSError("refused")])])
    assert describe_exception(group) == "refused"
    assert describe_exception(TimeoutError()) == "TimeoutError"
