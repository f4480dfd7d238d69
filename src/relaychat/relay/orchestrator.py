"""Relay orchestrator: drives one completion stream onto one client SSE session.

Event order on the wire:

    connected, (text | contentBlock | message)*, (done | error)

Exactly one terminal event is sent, always last. A client disconnect cancels
the completion stream and nothing more is written.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncGenerator, AsyncIterator

import structlog
from sse_starlette.sse import ServerSentEvent

from relaychat.llm.events import UpstreamEvent
from relaychat.llm.gateway import CompletionStream, LLMGateway
from relaychat.relay.events import (
    ConnectedEvent,
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    StreamEvent,
    from_upstream,
)
from relaychat.relay.tools import McpToolsCache

logger = structlog.get_logger()


class RelayOrchestrator:
    """Per-request relay between the completion gateway and a client stream."""

    def __init__(
        self,
        gateway: LLMGateway,
        tools_cache: McpToolsCache,
        *,
        emit_messages: bool = True,
    ) -> None:
        self.gateway = gateway
        self.tools_cache = tools_cache
        self.emit_messages = emit_messages

    async def events(self, message: str) -> AsyncGenerator[StreamEvent, None]:
        """Yield the wire events for one chat request."""
        stream_id = uuid.uuid4().hex[:8]
        log = logger.bind(stream_id=stream_id)
        tools = self.tools_cache.tools

        log.info("relay.stream.start", message_chars=len(message), tool_count=len(tools))
        yield ConnectedEvent()

        completion: CompletionStream | None = None
        upstream_events: AsyncGenerator[UpstreamEvent, None] | None = None
        terminal: StreamEvent | None = None
        sent = 0
        try:
            completion = self.gateway.stream_completion(message, tools=tools or None)
            upstream_events = aiter(completion)
            async for upstream in upstream_events:
                event = from_upstream(upstream)
                if event.terminal:
                    terminal = event
                    break
                if isinstance(event, MessageEvent) and not self.emit_messages:
                    continue
                sent += 1
                yield event

            if terminal is None:
                await completion.final_message()
                terminal = DoneEvent()
        except asyncio.CancelledError:
            log.info("relay.stream.client_disconnected", events_sent=sent)
            raise
        except Exception as e:
            log.error("relay.stream.error", error=f"{type(e).__name__}: {e}", events_sent=sent)
            terminal = ErrorEvent(error=str(e) or "Unknown error")
        finally:
            if upstream_events is not None:
                await upstream_events.aclose()
            if completion is not None:
                await completion.cancel()

        log.info("relay.stream.end", terminal=terminal.name, events_sent=sent)
        yield terminal

    async def stream(self, message: str) -> AsyncIterator[ServerSentEvent]:
        """Same as ``events`` rendered for ``EventSourceResponse``."""
        events = self.events(message)
        try:
            async for event in events:
                yield event.to_sse()
        finally:
            await events.aclose()
