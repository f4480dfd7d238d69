"""Consumer for the relay's ``/chat/stream`` SSE endpoint."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from httpx_sse import aconnect_sse

from relaychat.errors import ChatStreamError

logger = structlog.get_logger()

TERMINAL_EVENTS = frozenset({"done", "error"})


@dataclass(frozen=True)
class ChatStreamEvent:
    event: str
    data: dict[str, Any]

    @property
    def terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS


@dataclass
class StreamBuffer:
    """Running display text rebuilt from ``text`` events."""

    text: str = ""

    def apply(self, delta: str, snapshot: str | None = None) -> str:
        # The server snapshot wins; deltas alone are enough when it is missing
        self.text = snapshot if snapshot is not None else self.text + delta
        return self.text


@dataclass
class ChatResult:
    text: str = ""
    completed: bool = False
    error: str | None = None
    cancelled: bool = False
    events: list[ChatStreamEvent] = field(default_factory=list)


def _decode(data: str) -> dict[str, Any]:
    if not data:
        return {}
    try:
        decoded = json.loads(data)
    except json.JSONDecodeError:
        return {"raw": data}
    return decoded if isinstance(decoded, dict) else {"value": decoded}


class ChatStreamClient:
    """Opens chat streams against a relay; one stream at a time per client."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(10.0, read=timeout)
        self._transport = transport
        self._response: httpx.Response | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def stream(self, message: str) -> AsyncIterator[ChatStreamEvent]:
        """Yield decoded events until the terminal event or cancellation."""
        self._cancelled = False
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            async with aconnect_sse(client, "GET", "/chat/stream", params={"message": message}) as source:
                resp = source.response
                if resp.status_code >= 400:
                    await resp.aread()
                    raise ChatStreamError(_error_text(resp), status_code=resp.status_code)

                self._response = resp
                try:
                    async for sse in source.aiter_sse():
                        if self._cancelled:
                            return
                        event = ChatStreamEvent(event=sse.event, data=_decode(sse.data))
                        yield event
                        if event.terminal:
                            return
                except (httpx.StreamError, httpx.TransportError):
                    if self._cancelled:
                        return
                    raise
                finally:
                    self._response = None

        if not self._cancelled:
            raise ChatStreamError("Stream ended without a terminal event")

    async def collect(self, message: str) -> ChatResult:
        """Consume a whole stream, reassembling the text."""
        result = ChatResult()
        buffer = StreamBuffer()
        async for event in self.stream(message):
            result.events.append(event)
            if event.event == "text":
                buffer.apply(event.data.get("text", ""), event.data.get("snapshot"))
            elif event.event == "done":
                result.completed = True
            elif event.event == "error":
                result.error = event.data.get("error") or "Stream error"
        result.text = buffer.text
        result.cancelled = self._cancelled
        return result

    async def cancel(self) -> None:
        """Abort the in-flight stream; events already yielded stay yielded."""
        self._cancelled = True
        response = self._response
        if response is not None:
            logger.info("client.stream.cancelled")
            await response.aclose()


def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {resp.status_code}"
