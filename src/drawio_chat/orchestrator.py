"""
Per-turn orchestration: model call, create-vs-edit dispatch, response mapping.

Each turn moves Start -> model invoked -> (text only | invocation pending)
-> invocation resolved -> responded. Every turn produces exactly one of
{invocation result, plain text, fallback message}; the streaming variant
always ends with a ``done`` event, even after an error.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, AsyncGenerator, Optional, Sequence

from drawio_chat.accumulator import (
    ArgumentParseError,
    InvocationTurn,
    TextTurn,
    ToolCallAccumulator,
    Turn,
    turn_from_message,
)
from drawio_chat.backend_client import ConnectionManager
from drawio_chat.events import ChatResponse, StreamEvent
from drawio_chat.llm_client import LlmClient
from drawio_chat.operations import (
    DiagramResult,
    ErrorKind,
    handle_display_diagram,
    handle_edit_diagram,
)
from drawio_chat.prompts import build_system_message
from drawio_chat.tools import DISPLAY_DIAGRAM, EDIT_DIAGRAM, FLOWCHART_TOOLS
from drawio_chat.validation import ValidationError, validate_edit_operations
from drawio_chat.xml_utils import clean_llm_content

logger = logging.getLogger("drawio-chat")

FALLBACK_MESSAGE = "I can draw flowcharts for you. Please describe the process you need."
DEFAULT_CREATED_CAPTION = "Here is your diagram:"
DEFAULT_EDITED_CAPTION = "The diagram has been updated:"
ARGUMENT_ERROR_MESSAGE = "The AI returned malformed tool arguments, please try again."
GENERIC_ERROR_MESSAGE = "An error occurred while processing the request, please try again later."


class ChatOrchestrator:
    """Runs one user turn against the model and the editing backend."""

    def __init__(self, llm: LlmClient, backend: ConnectionManager) -> None:
        self.llm = llm
        self.backend = backend

    def _messages(
        self, messages: Sequence[dict[str, str]], current_xml: Optional[str]
    ) -> list[dict[str, Any]]:
        system = {"role": "system", "content": build_system_message(current_xml)}
        return [system, *messages]

    # ----- invocation resolution -----

    async def resolve(self, turn: InvocationTurn, current_xml: Optional[str]) -> ChatResponse:
        """Dispatch a tool invocation and map its outcome to a response."""
        if turn.name == DISPLAY_DIAGRAM:
            xml = turn.arguments.get("xml")
            result = await handle_display_diagram(
                self.backend, xml if isinstance(xml, str) else ""
            )
            return self._to_response(result, turn.text, DEFAULT_CREATED_CAPTION)

        if turn.name == EDIT_DIAGRAM:
            try:
                operations = validate_edit_operations(turn.arguments.get("operations"))
            except ValidationError as exc:
                logger.error("Invalid edit_diagram arguments: %s", exc.message)
                return ChatResponse.error(
                    f"Invalid edit operations: {exc.message}", ErrorKind.ARGUMENT_PARSE_ERROR
                )
            result = await handle_edit_diagram(self.backend, operations, current_xml)
            return self._to_response(result, turn.text, DEFAULT_EDITED_CAPTION)

        logger.error("Model invoked unknown tool '%s'", turn.name)
        return ChatResponse.error(
            f"Unknown tool '{turn.name}'.", ErrorKind.ARGUMENT_PARSE_ERROR
        )

    @staticmethod
    def _to_response(result: DiagramResult, text: str, caption: str) -> ChatResponse:
        if not result.success:
            return ChatResponse.error(
                result.error or "Diagram operation failed.", result.kind or ErrorKind.INTERNAL
            )
        return ChatResponse.flowchart(clean_llm_content(text) or caption, result.xml or "")

    # ----- whole-response turn -----

    async def respond(
        self, messages: Sequence[dict[str, str]], current_xml: Optional[str] = None
    ) -> ChatResponse:
        """Run one turn with a single request/response model call."""
        try:
            completion = await self.llm.complete(
                self._messages(messages, current_xml), tools=FLOWCHART_TOOLS
            )
            if not completion.choices:
                return ChatResponse.text(FALLBACK_MESSAGE)
            try:
                turn: Turn = turn_from_message(completion.choices[0].message)
            except ArgumentParseError as exc:
                logger.error("Tool argument parse error: %s", exc.message)
                return ChatResponse.error(ARGUMENT_ERROR_MESSAGE, ErrorKind.ARGUMENT_PARSE_ERROR)

            if isinstance(turn, InvocationTurn):
                return await self.resolve(turn, current_xml)
            return ChatResponse.text(clean_llm_content(turn.text) or FALLBACK_MESSAGE)
        except Exception:
            logger.exception("Chat turn failed")
            return ChatResponse.error(GENERIC_ERROR_MESSAGE, ErrorKind.INTERNAL)

    # ----- streamed turn -----

    async def stream(
        self, messages: Sequence[dict[str, str]], current_xml: Optional[str] = None
    ) -> AsyncGenerator[StreamEvent, None]:
        """Run one turn, yielding events as they become available."""
        try:
            async with contextlib.aclosing(self._stream_turn(messages, current_xml)) as events:
                async for event in events:
                    yield event
        except Exception:
            logger.exception("Chat stream failed")
            yield StreamEvent.error(GENERIC_ERROR_MESSAGE)
        yield StreamEvent.done()

    async def _stream_turn(
        self, messages: Sequence[dict[str, str]], current_xml: Optional[str]
    ) -> AsyncGenerator[StreamEvent, None]:
        accumulator = ToolCallAccumulator()
        chunks = await self.llm.stream(
            self._messages(messages, current_xml), tools=FLOWCHART_TOOLS
        )
        async for chunk in chunks:
            for event in accumulator.feed_chunk(chunk):
                yield event

        try:
            turn = accumulator.finish()
        except ArgumentParseError as exc:
            logger.error("Tool argument parse error: %s", exc.message)
            yield StreamEvent.error(ARGUMENT_ERROR_MESSAGE)
            return

        if isinstance(turn, InvocationTurn):
            response = await self.resolve(turn, current_xml)
            yield response.to_event()
        elif isinstance(turn, TextTurn) and not clean_llm_content(turn.text):
            yield StreamEvent.text(FALLBACK_MESSAGE)
        # Any other text was already streamed as it arrived
