"""LiteLLM gateway: streaming completions as a cancellable event source."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import litellm
import structlog

from relaychat.config import LLMConfig
from relaychat.errors import CompletionError
from relaychat.llm.events import ContentBlock, FullMessage, StreamFailed, TextDelta, UpstreamEvent

logger = structlog.get_logger()

# Suppress litellm's noisy logging
litellm.suppress_debug_info = True
litellm.drop_params = True


@dataclass
class _ToolCallBuffer:
    """Accumulates one streamed tool call until it is complete."""

    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""

    def to_block(self) -> dict[str, Any]:
        return {
            "type": "tool_use",
            "id": self.id,
            "name": self.name,
            "input": _parse_arguments(self.arguments),
        }

    def to_message_call(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class _StreamState:
    snapshot: str = ""
    block_text: str = ""
    tool_calls: dict[int, _ToolCallBuffer] = field(default_factory=dict)
    open_tool: int | None = None
    finish_reason: str | None = None
    model: str | None = None
    usage: dict[str, int] | None = None


class CompletionStream:
    """One streaming completion.

    Iterate it to receive ``UpstreamEvent`` values in provider order. The last
    event is either a ``FullMessage`` or a ``StreamFailed``. ``final_message()``
    resolves once iteration is over; ``cancel()`` stops emission and releases
    the provider connection.
    """

    def __init__(
        self,
        opener: Callable[[], Awaitable[Any]],
        *,
        request_id: int,
        on_usage: Callable[[dict[str, int]], None] | None = None,
    ) -> None:
        self._opener = opener
        self._request_id = request_id
        self._on_usage = on_usage
        self._response: Any = None
        self._state = _StreamState()
        self._final: dict[str, Any] | None = None
        self._error: str | None = None
        self._started = False
        self._finished = asyncio.Event()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __aiter__(self) -> AsyncGenerator[UpstreamEvent, None]:
        if self._started:
            raise RuntimeError("completion stream can only be iterated once")
        self._started = True
        return self._run()

    async def _run(self) -> AsyncGenerator[UpstreamEvent, None]:
        start = time.monotonic()
        try:
            if self._cancelled:
                return
            self._response = await self._opener()
            async for chunk in self._response:
                if self._cancelled:
                    return
                for event in self._translate(chunk):
                    yield event
                    if self._cancelled:
                        return
            if self._cancelled:
                return
            for event in self._close_open_blocks():
                yield event
            self._final = self._assemble()
            if self._state.usage and self._on_usage:
                self._on_usage(self._state.usage)
            logger.info(
                "llm.stream.complete",
                request_id=self._request_id,
                chars=len(self._state.snapshot),
                tool_calls=len(self._state.tool_calls),
                finish_reason=self._state.finish_reason,
                duration=f"{time.monotonic() - start:.2f}s",
            )
            self._finished.set()
            yield FullMessage(self._final)
        except asyncio.CancelledError:
            self._cancelled = True
            raise
        except Exception as e:
            if self._cancelled:
                # Closing the response under a live iterator raises; nothing to report
                return
            self._error = str(e) or type(e).__name__
            logger.error("llm.stream.error", request_id=self._request_id, error=self._error)
            self._finished.set()
            yield StreamFailed(self._error)
        finally:
            self._finished.set()
            await self._close_response()

    async def final_message(self) -> dict[str, Any]:
        """Wait for the assembled message; raises if the stream failed or was cancelled."""
        if not self._started:
            async for _ in self:
                pass
        await self._finished.wait()
        if self._error is not None:
            raise CompletionError(self._error)
        if self._final is None:
            raise CompletionError("completion stream was cancelled")
        return self._final

    async def cancel(self) -> None:
        """Stop emitting events and release the provider connection. Idempotent."""
        if self._cancelled or self._finished.is_set():
            return
        self._cancelled = True
        logger.info("llm.stream.cancelled", request_id=self._request_id)
        await self._close_response()
        if not self._started:
            self._finished.set()

    async def _close_response(self) -> None:
        response, self._response = self._response, None
        if response is None:
            return
        close = getattr(response, "aclose", None)
        if close is None:
            return
        try:
            await close()
        except Exception as e:
            logger.warning("llm.stream.close_failed", request_id=self._request_id, error=str(e))

    # -- chunk translation -------------------------------------------------

    def _translate(self, chunk: Any) -> list[UpstreamEvent]:
        state = self._state
        state.model = getattr(chunk, "model", None) or state.model

        usage = getattr(chunk, "usage", None)
        if usage:
            state.usage = {
                "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
                "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
                "total_tokens": getattr(usage, "total_tokens", 0) or 0,
            }

        choices = getattr(chunk, "choices", None) or []
        if not choices:
            return []
        choice = choices[0]
        if getattr(choice, "finish_reason", None):
            state.finish_reason = choice.finish_reason

        delta = getattr(choice, "delta", None)
        if delta is None:
            return []

        events: list[UpstreamEvent] = []
        text = getattr(delta, "content", None)
        if text:
            # Text after a tool call starts a new text segment
            events.extend(self._close_tool_call())
            state.snapshot += text
            state.block_text += text
            events.append(TextDelta(delta=text, snapshot=state.snapshot))

        for call in getattr(delta, "tool_calls", None) or []:
            events.extend(self._absorb_tool_call(call))
        return events

    def _absorb_tool_call(self, call: Any) -> list[UpstreamEvent]:
        state = self._state
        index = getattr(call, "index", None)
        if index is None:
            index = state.open_tool if state.open_tool is not None else len(state.tool_calls)

        events: list[UpstreamEvent] = []
        if state.open_tool != index:
            events.extend(self._close_text_block())
            events.extend(self._close_tool_call())
            state.open_tool = index
            state.tool_calls.setdefault(index, _ToolCallBuffer(index=index))

        buffer = state.tool_calls[index]
        if getattr(call, "id", None):
            buffer.id = call.id
        function = getattr(call, "function", None)
        if function is not None:
            if getattr(function, "name", None):
                buffer.name = function.name
            if getattr(function, "arguments", None):
                buffer.arguments += function.arguments
        return events

    def _close_text_block(self) -> list[UpstreamEvent]:
        state = self._state
        if not state.block_text:
            return []
        block = {"type": "text", "text": state.block_text}
        state.block_text = ""
        return [ContentBlock(block)]

    def _close_tool_call(self) -> list[UpstreamEvent]:
        state = self._state
        if state.open_tool is None:
            return []
        buffer = state.tool_calls[state.open_tool]
        state.open_tool = None
        return [ContentBlock(buffer.to_block())]

    def _close_open_blocks(self) -> list[UpstreamEvent]:
        return [*self._close_text_block(), *self._close_tool_call()]

    def _assemble(self) -> dict[str, Any]:
        state = self._state
        message: dict[str, Any] = {
            "role": "assistant",
            "content": state.snapshot,
            "finish_reason": state.finish_reason or "stop",
            "model": state.model,
        }
        if state.tool_calls:
            message["tool_calls"] = [
                state.tool_calls[i].to_message_call() for i in sorted(state.tool_calls)
            ]
        if state.usage:
            message["usage"] = dict(state.usage)
        return message


class LLMGateway:
    """Async wrapper around LiteLLM streaming completions."""

    def __init__(self, config: LLMConfig) -> None:
        self.config = config
        self.total_tokens_used = 0
        self.request_count = 0

    def stream_completion(
        self,
        prompt: str,
        *,
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
    ) -> CompletionStream:
        """Start a streaming completion with ``prompt`` as the only user turn.

        Tool specs are passed to the provider verbatim; tool calls the model
        makes are reported as content blocks and never executed here.
        """
        model = model or self.config.model
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.config.max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if self.config.temperature is not None:
            kwargs["temperature"] = self.config.temperature
        if self.config.api_key:
            kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base
        if tools:
            kwargs["tools"] = tools

        self.request_count += 1
        request_id = self.request_count

        logger.info(
            "llm.request",
            request_id=request_id,
            model=model,
            prompt_chars=len(prompt),
            tool_count=len(tools or []),
        )

        async def open_stream() -> Any:
            return await litellm.acompletion(**kwargs)

        return CompletionStream(open_stream, request_id=request_id, on_usage=self._record_usage)

    def _record_usage(self, usage: dict[str, int]) -> None:
        self.total_tokens_used += usage.get("total_tokens", 0)

    @property
    def stats(self) -> dict[str, Any]:
        """Return usage statistics."""
        return {
            "total_tokens": self.total_tokens_used,
            "request_count": self.request_count,
            "model": self.config.model,
        }


def _parse_arguments(raw: str) -> Any:
    """Parse JSON tool arguments, returning the raw string on failure."""
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw
