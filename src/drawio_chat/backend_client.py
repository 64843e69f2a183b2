"""
Connection to the diagram-editing backend over MCP stdio.

The backend is one long-lived child process shared by every chat turn.
``ConnectionManager`` owns its lifecycle: at most one connection attempt and
at most one ``start_session`` call are ever in flight, concurrent callers
await the same pending future, and a transport close resets both so that the
next caller reconnects.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

import anyio
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import CallToolResult, Implementation, ListToolsResult

from drawio_chat.config import BackendSettings

logging.getLogger("mcp.client").setLevel(logging.WARNING)
logger = logging.getLogger("drawio-chat")


class BackendCallFailed(Exception):
    """The backend could not be reached, or a call failed at the transport level."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class BackendConnection(Protocol):
    async def call_tool(self, name: str, arguments: dict[str, Any]) -> CallToolResult: ...

    async def list_tools(self) -> ListToolsResult: ...

    async def close(self) -> None: ...

    def on_close(self, callback: Callable[[], None]) -> None: ...


Connector = Callable[[], Awaitable[BackendConnection]]

# Errors that mean the stdio pipe is gone rather than that one call failed
_TRANSPORT_ERRORS = (
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
    BrokenPipeError,
    ConnectionError,
)


class StdioConnection:
    """An MCP client session over a child process's stdio.

    The anyio context managers of the MCP client must be entered and exited
    in the same task, so they live in a dedicated serving task that holds the
    session open until ``close`` is requested or the transport breaks.
    """

    def __init__(self, params: StdioServerParameters, client_info: Implementation) -> None:
        self._params = params
        self._client_info = client_info
        self._session: Optional[ClientSession] = None
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self._ready: Optional[asyncio.Future[None]] = None
        self._callbacks: list[Callable[[], None]] = []
        self._closed = False

    @classmethod
    async def open(cls, settings: BackendSettings) -> StdioConnection:
        params = StdioServerParameters(
            command=settings.command,
            args=list(settings.args),
            env=settings.child_env(),
        )
        info = Implementation(name=settings.client_name, version=settings.client_version)
        conn = cls(params, info)
        await conn._start()
        return conn

    async def _start(self) -> None:
        self._ready = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(self._serve())
        await self._ready

    async def _serve(self) -> None:
        assert self._ready is not None
        try:
            async with stdio_client(self._params) as (read, write):
                async with ClientSession(read, write, client_info=self._client_info) as session:
                    await session.initialize()
                    self._session = session
                    self._ready.set_result(None)
                    await self._stop.wait()
        except Exception as exc:
            if not self._ready.done():
                self._ready.set_exception(exc)
            else:
                logger.warning("Backend transport ended with error: %s", exc)
        finally:
            self._session = None
            self._notify_closed()

    def _notify_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        for callback in self._callbacks:
            callback()

    def on_close(self, callback: Callable[[], None]) -> None:
        self._callbacks.append(callback)

    def _require_session(self) -> ClientSession:
        if self._session is None or self._closed:
            raise BackendCallFailed("Backend connection is closed.")
        return self._session

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> CallToolResult:
        session = self._require_session()
        try:
            return await session.call_tool(name, arguments)
        except _TRANSPORT_ERRORS:
            self._stop.set()
            raise

    async def list_tools(self) -> ListToolsResult:
        session = self._require_session()
        try:
            return await session.list_tools()
        except _TRANSPORT_ERRORS:
            self._stop.set()
            raise

    async def close(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task


class ConnectionManager:
    """Shared, lazily established connection + session to the backend."""

    def __init__(self, connector: Connector) -> None:
        self._connector = connector
        self._connection: Optional[BackendConnection] = None
        self._connected = False
        self._session_started = False
        self._connecting: Optional[asyncio.Future[BackendConnection]] = None
        self._starting_session: Optional[asyncio.Future[None]] = None

    @classmethod
    def from_settings(cls, settings: BackendSettings) -> ConnectionManager:
        return cls(lambda: StdioConnection.open(settings))

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def session_started(self) -> bool:
        return self._session_started

    # ----- connection -----

    async def acquire(self) -> BackendConnection:
        """Return the live connection, establishing it once if needed."""
        if self._connection is not None and self._connected:
            return self._connection
        if self._connecting is None:
            fut = asyncio.ensure_future(self._do_connect())
            self._connecting = fut
            fut.add_done_callback(self._clear_connecting)
        # shield: one cancelled waiter must not abort the shared attempt
        return await asyncio.shield(self._connecting)

    def _clear_connecting(self, fut: asyncio.Future[BackendConnection]) -> None:
        if self._connecting is fut:
            self._connecting = None
        if not fut.cancelled():
            # Mark retrieved so an attempt nobody awaits is not logged as lost
            fut.exception()

    async def _do_connect(self) -> BackendConnection:
        if self._connection is not None:
            stale, self._connection = self._connection, None
            try:
                await stale.close()
            except Exception as exc:
                logger.debug("Ignoring error while closing stale connection: %s", exc)

        logger.info("Connecting to diagram backend...")
        try:
            connection = await self._connector()
        except BackendCallFailed:
            raise
        except Exception as exc:
            logger.error("Failed to connect to diagram backend: %s", exc)
            raise BackendCallFailed(f"Could not connect to the diagram backend: {exc}") from exc

        self._connection = connection
        self._connected = True
        self._session_started = False
        connection.on_close(lambda: self._handle_close(connection))
        return connection

    def _handle_close(self, connection: BackendConnection) -> None:
        if self._connection is not connection:
            return
        logger.info("Diagram backend connection closed")
        self._connected = False
        self._session_started = False
        self._connection = None

    # ----- session -----

    async def ensure_session(self) -> None:
        """Call the backend's ``start_session`` exactly once per connection."""
        if self._session_started and self._connected:
            return
        if self._starting_session is None:
            fut = asyncio.ensure_future(self._do_start_session())
            self._starting_session = fut
            fut.add_done_callback(self._clear_starting_session)
        await asyncio.shield(self._starting_session)

    def _clear_starting_session(self, fut: asyncio.Future[None]) -> None:
        if self._starting_session is fut:
            self._starting_session = None
        if not fut.cancelled():
            fut.exception()

    async def _do_start_session(self) -> None:
        connection = await self.acquire()
        logger.info("Starting backend session...")
        result = await self._call(connection, "start_session", {})
        if result.isError:
            message = result_text(result) or "start_session failed"
            logger.error("Failed to start backend session: %s", message)
            raise BackendCallFailed(f"Could not start the diagram session: {message}")
        logger.debug("Backend session started: %s", result_text(result))
        self._session_started = True

    # ----- calls -----

    async def _call(
        self, connection: BackendConnection, name: str, arguments: dict[str, Any]
    ) -> CallToolResult:
        try:
            return await connection.call_tool(name, arguments)
        except BackendCallFailed:
            raise
        except Exception as exc:
            logger.error("Backend call '%s' failed: %s", name, exc)
            raise BackendCallFailed(f"Backend call '{name}' failed: {exc}") from exc

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> CallToolResult:
        connection = await self.acquire()
        result = await self._call(connection, name, arguments)
        logger.debug("Backend %s result (isError=%s)", name, result.isError)
        return result

    async def list_tools(self) -> ListToolsResult:
        connection = await self.acquire()
        try:
            return await connection.list_tools()
        except BackendCallFailed:
            raise
        except Exception as exc:
            raise BackendCallFailed(f"Backend list_tools failed: {exc}") from exc

    async def disconnect(self) -> None:
        connection, self._connection = self._connection, None
        self._connected = False
        self._session_started = False
        if connection is not None:
            await connection.close()


def result_text(result: CallToolResult) -> str:
    """Return the first text item of a tool result, or an empty string."""
    for item in result.content or []:
        if getattr(item, "type", None) == "text":
            return getattr(item, "text", "") or ""
    return ""
