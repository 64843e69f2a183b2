"""
HTTP front end for the diagram chat service.

Endpoints:
  POST /api/chat           one chat turn as server-sent events
                           (text, status, flowchart, error, done)
  POST /api/chat/complete  one chat turn as a single JSON response
  POST /api/export         sanitize a document exported by the editor
  GET  /api/health         backend connection state
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Optional

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from drawio_chat.backend_client import ConnectionManager
from drawio_chat.config import Settings
from drawio_chat.events import StreamEvent, sse_event
from drawio_chat.llm_client import LlmClient
from drawio_chat.operations import ErrorKind
from drawio_chat.orchestrator import ChatOrchestrator
from drawio_chat.sanitize import sanitize_diagram_xml, xml_from_svg_export
from drawio_chat.validation import ValidationError, validate_chat_request

logger = logging.getLogger("drawio-chat")

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}
TIMEOUT_MESSAGE = "The request timed out, please try again."


def _sse_error(message: str, status_code: int = 400) -> Response:
    return Response(
        sse_event("error", {"content": message}),
        status_code=status_code,
        media_type="text/event-stream",
    )


async def _with_deadline(
    events: AsyncGenerator[StreamEvent, None], timeout: float
) -> AsyncIterator[StreamEvent]:
    """Forward *events* until *timeout* seconds elapse, then end the turn.

    *events* is closed on every exit path, including an early close of this
    generator when the client goes away.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    try:
        while True:
            try:
                event = await asyncio.wait_for(
                    events.__anext__(), max(deadline - loop.time(), 0)
                )
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError:
                logger.error("Chat turn timed out after %.0fs", timeout)
                yield StreamEvent.error(TIMEOUT_MESSAGE)
                yield StreamEvent.done()
                return
            yield event
    finally:
        await events.aclose()


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body is not valid JSON.") from exc


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[ChatOrchestrator] = None,
) -> Starlette:
    settings = settings or Settings.from_env()
    if orchestrator is None:
        orchestrator = ChatOrchestrator(
            LlmClient(settings.llm),
            ConnectionManager.from_settings(settings.backend),
        )
    limits = settings.limits

    def _validate(body: Any) -> tuple[list[dict[str, str]], Optional[str]]:
        return validate_chat_request(
            body,
            max_messages=limits.max_messages,
            max_message_length=limits.max_message_length,
            max_xml_size=limits.max_xml_size,
        )

    async def chat(request: Request) -> Response:
        try:
            messages, current_xml = _validate(await _read_json(request))
        except ValidationError as exc:
            return _sse_error(exc.message)

        async def body() -> AsyncIterator[str]:
            events = orchestrator.stream(messages, current_xml)
            async for event in _with_deadline(events, limits.request_timeout):
                yield event.encode()

        return StreamingResponse(body(), media_type="text/event-stream", headers=SSE_HEADERS)

    async def chat_complete(request: Request) -> Response:
        try:
            messages, current_xml = _validate(await _read_json(request))
        except ValidationError as exc:
            return JSONResponse(
                {"type": "error", "content": exc.message},
                status_code=ErrorKind.REQUEST_MALFORMED.http_status,
            )
        try:
            response = await asyncio.wait_for(
                orchestrator.respond(messages, current_xml), limits.request_timeout
            )
        except asyncio.TimeoutError:
            logger.error("Chat turn timed out after %.0fs", limits.request_timeout)
            return JSONResponse({"type": "error", "content": TIMEOUT_MESSAGE}, status_code=504)
        return JSONResponse(response.to_dict(), status_code=response.http_status)

    async def export(request: Request) -> Response:
        try:
            body = await _read_json(request)
        except ValidationError as exc:
            return JSONResponse({"error": exc.message}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Request body must be an object."}, status_code=400)

        xml = body.get("xml")
        svg = body.get("svg")
        if isinstance(svg, str) and svg:
            xml = xml_from_svg_export(svg)
            if xml is None:
                return JSONResponse(
                    {"error": "No diagram found in the SVG export."}, status_code=400
                )
        if not isinstance(xml, str) or not xml.strip():
            return JSONResponse({"error": "'xml' must be a non-empty string."}, status_code=400)
        if len(xml) > limits.max_xml_size:
            return JSONResponse({"error": "'xml' exceeds the size limit."}, status_code=400)
        return JSONResponse({"xml": sanitize_diagram_xml(xml)})

    async def health(request: Request) -> Response:
        return JSONResponse({
            "status": "ok",
            "backend": {
                "connected": orchestrator.backend.connected,
                "session_started": orchestrator.backend.session_started,
            },
        })

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        await orchestrator.backend.disconnect()

    app = Starlette(
        routes=[
            Route("/api/chat", chat, methods=["POST"]),
            Route("/api/chat/complete", chat_complete, methods=["POST"]),
            Route("/api/export", export, methods=["POST"]),
            Route("/api/health", health, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.settings = settings
    return app


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the chat HTTP server."""
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
