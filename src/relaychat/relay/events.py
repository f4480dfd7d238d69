"""Client-facing SSE events."""

from __future__ import annotations

import json
from typing import Any, ClassVar, Literal

from pydantic import BaseModel
from sse_starlette.sse import ServerSentEvent

from relaychat.llm.events import ContentBlock, FullMessage, StreamFailed, TextDelta, UpstreamEvent


class StreamEvent(BaseModel):
    """One named event on the chat stream; ``data`` is a JSON object."""

    name: ClassVar[str]
    terminal: ClassVar[bool] = False

    def payload(self) -> dict[str, Any]:
        return self.model_dump()

    def to_sse(self) -> ServerSentEvent:
        return ServerSentEvent(event=self.name, data=json.dumps(self.payload(), ensure_ascii=False))


class ConnectedEvent(StreamEvent):
    name = "connected"
    status: Literal["connected"] = "connected"


class TextEvent(StreamEvent):
    name = "text"
    text: str
    snapshot: str


class ContentBlockEvent(StreamEvent):
    name = "contentBlock"
    block: dict[str, Any]

    def payload(self) -> dict[str, Any]:
        return dict(self.block)


class MessageEvent(StreamEvent):
    name = "message"
    message: dict[str, Any]

    def payload(self) -> dict[str, Any]:
        return dict(self.message)


class ErrorEvent(StreamEvent):
    name = "error"
    terminal = True
    error: str


class DoneEvent(StreamEvent):
    name = "done"
    terminal = True
    status: Literal["completed"] = "completed"


def from_upstream(event: UpstreamEvent) -> StreamEvent:
    """Translate a completion stream event into its wire event."""
    if isinstance(event, TextDelta):
        return TextEvent(text=event.delta, snapshot=event.snapshot)
    if isinstance(event, ContentBlock):
        return ContentBlockEvent(block=event.block)
    if isinstance(event, FullMessage):
        return MessageEvent(message=event.message)
    if isinstance(event, StreamFailed):
        return ErrorEvent(error=event.error)
    raise TypeError(f"Unknown upstream event: {type(event).__name__}")
