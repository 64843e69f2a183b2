"""Shared fakes: a scripted model and an in-process editing backend."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Callable

import pytest
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import CallToolResult, ListToolsResult, TextContent, Tool
from openai.types.chat import ChatCompletionChunk
from openai.types.chat.chat_completion_chunk import (
    Choice,
    ChoiceDelta,
    ChoiceDeltaToolCall,
    ChoiceDeltaToolCallFunction,
)

from drawio_chat import backend
from drawio_chat.backend_client import ConnectionManager

CELL_START = (
    '<mxCell id="2" value="Start" vertex="1" parent="1">'
    '<mxGeometry x="40" y="40" width="120" height="60" as="geometry"/></mxCell>'
)


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

_TOOLS: dict[str, Callable[..., str]] = {
    "start_session": backend.start_session,
    "create_new_diagram": backend.create_new_diagram,
    "get_diagram": backend.get_diagram,
    "edit_diagram": backend.edit_diagram,
}


def _text_result(text: str, is_error: bool = False) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)


class InProcessConnection:
    """BackendConnection that calls the reference backend's tools directly."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False
        self.overrides: dict[str, CallToolResult | Exception] = {}
        self._callbacks: list[Callable[[], None]] = []

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> CallToolResult:
        if self.closed:
            raise ConnectionError("connection closed")
        self.calls.append((name, arguments))
        override = self.overrides.get(name)
        if isinstance(override, Exception):
            raise override
        if override is not None:
            return override
        try:
            return _text_result(_TOOLS[name](**arguments))
        except ToolError as exc:
            return _text_result(str(exc), is_error=True)

    async def list_tools(self) -> ListToolsResult:
        return ListToolsResult(tools=[
            Tool(name=name, inputSchema={"type": "object"}) for name in _TOOLS
        ])

    def on_close(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def simulate_transport_close(self) -> None:
        self.closed = True
        for callback in self._callbacks:
            callback()

    async def close(self) -> None:
        if not self.closed:
            self.simulate_transport_close()

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


class CountingConnector:
    """Connector that hands out InProcessConnections and counts attempts."""

    def __init__(self, delay: float = 0.0, fail: Exception | None = None) -> None:
        self.attempts = 0
        self.delay = delay
        self.fail = fail
        self.connections: list[InProcessConnection] = []

    async def __call__(self) -> InProcessConnection:
        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        conn = InProcessConnection()
        self.connections.append(conn)
        return conn

    @property
    def current(self) -> InProcessConnection:
        return self.connections[-1]


@pytest.fixture(autouse=True)
def _reset_backend_store() -> None:
    backend._store.reset()


@pytest.fixture
def connector() -> CountingConnector:
    return CountingConnector()


@pytest.fixture
def manager(connector: CountingConnector) -> ConnectionManager:
    return ConnectionManager(connector)


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

def text_chunk(content: str) -> ChatCompletionChunk:
    return _chunk(ChoiceDelta(content=content))


def tool_chunk(name: str | None = None, arguments: str | None = None) -> ChatCompletionChunk:
    call = ChoiceDeltaToolCall(
        index=0,
        id="call_1" if name else None,
        type="function" if name else None,
        function=ChoiceDeltaToolCallFunction(name=name, arguments=arguments),
    )
    return _chunk(ChoiceDelta(tool_calls=[call]))


def _chunk(delta: ChoiceDelta) -> ChatCompletionChunk:
    return ChatCompletionChunk(
        id="chunk",
        object="chat.completion.chunk",
        created=0,
        model="test-model",
        choices=[Choice(index=0, delta=delta, finish_reason=None)],
    )


def tool_call_chunks(name: str, arguments: dict[str, Any], pieces: int = 3) -> list[ChatCompletionChunk]:
    """Split the JSON arguments of a tool call over several chunks."""
    raw = json.dumps(arguments)
    size = max(1, len(raw) // pieces + 1)
    parts = [raw[i:i + size] for i in range(0, len(raw), size)]
    return [tool_chunk(name=name)] + [tool_chunk(arguments=p) for p in parts]


def completion(content: str | None = None, name: str | None = None, arguments: Any = None) -> Any:
    tool_calls = None
    if name:
        tool_calls = [SimpleNamespace(
            id="call_1",
            type="function",
            function=SimpleNamespace(name=name, arguments=arguments),
        )]
    message = SimpleNamespace(role="assistant", content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(index=0, message=message)])


class ScriptedLlm:
    """Stands in for LlmClient; replays canned chunks or a canned completion."""

    def __init__(self, chunks: list[Any] | None = None, reply: Any = None,
                 error: Exception | None = None) -> None:
        self.chunks = chunks or []
        self.reply = reply
        self.error = error
        self.requests: list[list[dict[str, Any]]] = []

    async def stream(self, messages: Any, tools: Any = None, tool_choice: Any = None) -> Any:
        self.requests.append(list(messages))
        if self.error is not None:
            raise self.error
        chunks = self.chunks

        async def _gen() -> Any:
            for chunk in chunks:
                yield chunk

        return _gen()

    async def complete(self, messages: Any, tools: Any = None, tool_choice: Any = None) -> Any:
        self.requests.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.reply


def run(coro: Any) -> Any:
    return asyncio.run(coro)


async def collect(agen: Any) -> list[Any]:
    return [item async for item in agen]
