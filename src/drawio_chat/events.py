"""
Response shapes surfaced to the chat UI, as whole responses or as a stream.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from drawio_chat.operations import ErrorKind


@dataclass
class StreamEvent:
    type: str
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def text(cls, content: str) -> StreamEvent:
        return cls("text", {"content": content})

    @classmethod
    def status(cls, content: str) -> StreamEvent:
        return cls("status", {"content": content})

    @classmethod
    def flowchart(cls, content: str, xml: str) -> StreamEvent:
        return cls("flowchart", {"content": content, "xml": xml})

    @classmethod
    def error(cls, content: str) -> StreamEvent:
        return cls("error", {"content": content})

    @classmethod
    def done(cls) -> StreamEvent:
        return cls("done", {})

    def encode(self) -> str:
        return sse_event(self.type, self.data)


@dataclass
class ChatResponse:
    """One of ``text``, ``flowchart`` or ``error``."""
    type: str
    content: str
    xml: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def text(cls, content: str) -> ChatResponse:
        return cls("text", content)

    @classmethod
    def flowchart(cls, content: str, xml: str) -> ChatResponse:
        return cls("flowchart", content, xml=xml)

    @classmethod
    def error(cls, content: str, kind: ErrorKind = ErrorKind.INTERNAL) -> ChatResponse:
        return cls("error", content, kind=kind)

    @property
    def http_status(self) -> int:
        return self.kind.http_status if self.type == "error" and self.kind else 200

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "content": self.content}
        if self.xml is not None:
            data["xml"] = self.xml
        return data

    def to_event(self) -> StreamEvent:
        if self.type == "flowchart":
            return StreamEvent.flowchart(self.content, self.xml or "")
        if self.type == "error":
            return StreamEvent.error(self.content)
        return StreamEvent.text(self.content)


def sse_event(event: str, data: dict[str, Any]) -> str:
    """Format one server-sent event."""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"
