"""
Reassembly of streamed tool calls.

A streamed model turn arrives as chunks carrying free-text deltas and/or
tool-call deltas (a function name once, then argument-string fragments).
Argument fragments are not valid JSON on their own, so they are buffered
verbatim and parsed exactly once when the stream ends.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from drawio_chat.events import StreamEvent

STATUS_GENERATING = "Generating diagram..."


class ArgumentParseError(Exception):
    """The buffered tool-call arguments are not a JSON object."""

    def __init__(self, message: str, raw: str = "") -> None:
        self.message = message
        self.raw = raw
        super().__init__(message)


@dataclass
class TextTurn:
    """The model answered in free text only (possibly empty)."""
    text: str


@dataclass
class InvocationTurn:
    """The model invoked a tool."""
    name: str
    arguments: dict[str, Any]
    text: str = ""


Turn = Union[TextTurn, InvocationTurn]


def parse_tool_arguments(args: Union[str, Mapping[str, Any], None]) -> dict[str, Any]:
    """Decode tool-call arguments given as a JSON string or a mapping."""
    if isinstance(args, Mapping):
        return dict(args)
    if args is None or not args.strip():
        raise ArgumentParseError("Tool arguments are empty.", args or "")
    try:
        parsed = json.loads(args)
    except json.JSONDecodeError as exc:
        raise ArgumentParseError(f"Tool arguments are not valid JSON: {exc}", args) from exc
    if not isinstance(parsed, dict):
        raise ArgumentParseError(
            f"Tool arguments must be a JSON object, got {type(parsed).__name__}.", args
        )
    return parsed


@dataclass
class ToolCallAccumulator:
    """Per-turn state: ``{name, argument buffer, text buffer, has_invocation}``."""
    name: str = ""
    has_invocation: bool = False
    _arguments: list[str] = field(default_factory=list, repr=False)
    _text: list[str] = field(default_factory=list, repr=False)

    @property
    def text(self) -> str:
        return "".join(self._text)

    @property
    def arguments(self) -> str:
        return "".join(self._arguments)

    def feed(
        self,
        content: Optional[str] = None,
        tool_name: Optional[str] = None,
        tool_arguments: Optional[str] = None,
        *,
        has_tool_call: bool = False,
    ) -> list[StreamEvent]:
        """Consume one chunk; return the events to surface immediately."""
        events: list[StreamEvent] = []
        if content:
            self._text.append(content)
            events.append(StreamEvent.text(content))
        if has_tool_call or tool_name or tool_arguments:
            self.has_invocation = True
            if tool_name and not self.name:
                self.name = tool_name
                events.append(StreamEvent.status(STATUS_GENERATING))
            if tool_arguments:
                self._arguments.append(tool_arguments)
        return events

    def feed_chunk(self, chunk: Any) -> list[StreamEvent]:
        """Consume an OpenAI ``ChatCompletionChunk``."""
        if not chunk.choices:
            return []
        delta = chunk.choices[0].delta
        if delta is None:
            return []
        tool_calls = getattr(delta, "tool_calls", None) or []
        name = arguments = None
        if tool_calls:
            function = tool_calls[0].function
            if function is not None:
                name = function.name
                arguments = function.arguments
        return self.feed(
            delta.content, name, arguments, has_tool_call=bool(tool_calls)
        )

    def finish(self) -> Turn:
        """Resolve the turn once the stream has ended."""
        if self.has_invocation and self.name:
            return InvocationTurn(
                self.name, parse_tool_arguments(self.arguments), self.text
            )
        return TextTurn(self.text)


def turn_from_message(message: Any) -> Turn:
    """Resolve a non-streamed OpenAI ``ChatCompletionMessage`` into a turn."""
    text = message.content or ""
    tool_calls = message.tool_calls or []
    if tool_calls and tool_calls[0].function and tool_calls[0].function.name:
        function = tool_calls[0].function
        return InvocationTurn(function.name, parse_tool_arguments(function.arguments), text)
    return TextTurn(text)
