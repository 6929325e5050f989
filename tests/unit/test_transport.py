from __future__ import annotations

import pytest

from mcpdesk.mcp.transport import TransportKind, parse_transport_hint, select_transport


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("http://localhost:3000/sse", TransportKind.SSE),
        ("https://tools.example.com/v1/sse/events", TransportKind.SSE),
        ("http://localhost:3000/mcp", TransportKind.STREAMABLE_HTTP),
        ("https://tools.example.com/", TransportKind.STREAMABLE_HTTP),
        ("http://sse.example.com/mcp", TransportKind.STREAMABLE_HTTP),
    ],
)
def test_select_transport_uses_path_heuristic_without_hint(
    url: str,
    expected: TransportKind,
) -> None:
    assert select_transport(url) is expected


def test_explicit_hint_wins_over_url_shape() -> None:
    assert select_transport("http://localhost/sse", "http") is TransportKind.STREAMABLE_HTTP
    assert select_transport("http://localhost/mcp", "sse") is TransportKind.SSE
    assert (
        select_transport("http://localhost/sse", "streamable-http")
        is TransportKind.STREAMABLE_HTTP
    )


def test_hints_are_trimmed_and_case_insensitive() -> None:
    assert parse_transport_hint("  SSE ") is TransportKind.SSE
    assert parse_transport_hint("HTTP") is TransportKind.STREAMABLE_HTTP


def test_unknown_hint_falls_back_to_heuristic() -> None:
    assert parse_transport_hint("websocket") is None
    assert select_transport("http://localhost/sse", "websocket") is TransportKind.SSE
    assert select_transport("http://localhost/mcp", "") is TransportKind.STREAMABLE_HTTP


def test_malformed_url_never_raises() -> None:
    assert select_transport("http://[::1/sse") is TransportKind.SSE
    assert select_transport("not a url") is TransportKind.STREAMABLE_HTTP
