"""Tests for the shared backend connection manager."""

import asyncio

import pytest
from mcp.types import CallToolResult, TextContent

from drawio_chat.backend_client import (
    BackendCallFailed,
    ConnectionManager,
    StdioConnection,
    result_text,
)
from drawio_chat.config import BackendSettings

from conftest import CountingConnector, run


def test_concurrent_acquire_connects_once() -> None:
    connector = CountingConnector(delay=0.01)
    manager = ConnectionManager(connector)

    async def scenario():
        return await asyncio.gather(*(manager.acquire() for _ in range(10)))

    connections = run(scenario())
    assert connector.attempts == 1
    assert all(c is connections[0] for c in connections)
    assert manager.connected


def test_connection_is_reused(manager: ConnectionManager, connector: CountingConnector) -> None:
    async def scenario():
        first = await manager.acquire()
        second = await manager.acquire()
        return first, second

    first, second = run(scenario())
    assert first is second
    assert connector.attempts == 1


def test_concurrent_ensure_session_starts_once(
    manager: ConnectionManager, connector: CountingConnector
) -> None:
    async def scenario():
        await asyncio.gather(*(manager.ensure_session() for _ in range(5)))
        await manager.ensure_session()

    run(scenario())
    assert connector.attempts == 1
    assert connector.current.names() == ["start_session"]
    assert manager.session_started


def test_transport_close_resets_and_reconnects(
    manager: ConnectionManager, connector: CountingConnector
) -> None:
    async def scenario():
        await manager.ensure_session()
        connector.current.simulate_transport_close()
        assert not manager.connected
        assert not manager.session_started
        await manager.ensure_session()

    run(scenario())
    assert connector.attempts == 2
    assert connector.connections[0].names() == ["start_session"]
    assert connector.connections[1].names() == ["start_session"]


def test_close_of_stale_connection_is_ignored(
    manager: ConnectionManager, connector: CountingConnector
) -> None:
    async def scenario():
        await manager.acquire()
        old = connector.current
        old.simulate_transport_close()
        await manager.acquire()
        # A late close notification from the old transport changes nothing
        for callback in old._callbacks:
            callback()
        return manager.connected

    assert run(scenario())
    assert connector.attempts == 2


def test_connect_failure_is_shared_and_retryable() -> None:
    connector = CountingConnector(delay=0.01, fail=OSError("spawn failed"))
    manager = ConnectionManager(connector)

    async def scenario():
        results = await asyncio.gather(
            *(manager.acquire() for _ in range(3)), return_exceptions=True
        )
        assert all(isinstance(r, BackendCallFailed) for r in results)
        assert "spawn failed" in results[0].message
        connector.fail = None
        return await manager.acquire()

    assert run(scenario()) is not None
    assert connector.attempts == 2


def test_session_error_result_raises(
    manager: ConnectionManager, connector: CountingConnector
) -> None:
    async def scenario():
        conn = await manager.acquire()
        conn.overrides["start_session"] = CallToolResult(
            content=[TextContent(type="text", text="browser unavailable")], isError=True
        )
        with pytest.raises(BackendCallFailed, match="browser unavailable"):
            await manager.ensure_session()
        assert not manager.session_started

    run(scenario())


def test_call_tool_wraps_transport_errors(
    manager: ConnectionManager, connector: CountingConnector
) -> None:
    async def scenario():
        conn = await manager.acquire()
        conn.overrides["get_diagram"] = BrokenPipeError("pipe closed")
        with pytest.raises(BackendCallFailed, match="pipe closed"):
            await manager.call_tool("get_diagram", {})

    run(scenario())


def test_call_tool_returns_error_results(
    manager: ConnectionManager, connector: CountingConnector
) -> None:
    result = run(manager.call_tool("get_diagram", {}))
    assert result.isError
    assert "No diagram" in result_text(result)


def test_list_tools(manager: ConnectionManager) -> None:
    tools = run(manager.list_tools())
    assert {t.name for t in tools.tools} == {
        "start_session", "create_new_diagram", "get_diagram", "edit_diagram",
    }


def test_disconnect(manager: ConnectionManager, connector: CountingConnector) -> None:
    async def scenario():
        await manager.ensure_session()
        await manager.disconnect()

    run(scenario())
    assert connector.current.closed
    assert not manager.connected
    assert not manager.session_started


def test_result_text() -> None:
    assert result_text(CallToolResult(content=[])) == ""
    assert result_text(
        CallToolResult(content=[TextContent(type="text", text="ok")])
    ) == "ok"


def test_stdio_connection_refuses_calls_before_start() -> None:
    conn = StdioConnection.__new__(StdioConnection)
    conn._session = None
    conn._closed = False
    with pytest.raises(BackendCallFailed, match="closed"):
        run(conn.call_tool("get_diagram", {}))


def test_from_settings_builds_stdio_connector() -> None:
    manager = ConnectionManager.from_settings(
        BackendSettings(command="definitely-not-a-real-binary", args=[])
    )
    assert not manager.connected
    with pytest.raises(BackendCallFailed, match="Could not connect"):
        run(manager.acquire())
