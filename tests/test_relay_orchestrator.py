from __future__ import annotations

import json

import pytest
from fakes import FakeGateway, FakeProviderStream, finish_chunk, text_chunk, tool_chunk

from relaychat.relay.events import ContentBlockEvent, DoneEvent, ErrorEvent, TextEvent
from relaychat.relay.orchestrator import RelayOrchestrator
from relaychat.relay.tools import McpToolsCache, ToolDiscovery

WEATHER_SPEC = {
    "type": "function",
    "function": {"name": "get_current_weather", "description": "", "parameters": {"type": "object"}},
}


def _cache(tools: list[dict] | None = None) -> McpToolsCache:
    cache = McpToolsCache()
    cache.populate(ToolDiscovery(tools=tools or []))
    return cache


async def _collect(orchestrator: RelayOrchestrator, message: str = "hi") -> list:
    return [event async for event in orchestrator.events(message)]


def _names(events: list) -> list[str]:
    return [event.name for event in events]


@pytest.mark.asyncio
async def test_successful_stream_event_order() -> None:
    gateway = FakeGateway(FakeProviderStream([text_chunk("Talla"), text_chunk("hassee"), finish_chunk()]))

    events = await _collect(RelayOrchestrator(gateway, _cache()))

    assert _names(events) == ["connected", "text", "text", "contentBlock", "message", "done"]
    assert events[-1] == DoneEvent()


@pytest.mark.asyncio
async def test_text_snapshots_grow_by_each_delta() -> None:
    chunks = [text_chunk(piece) for piece in ["The ", "capital ", "is ", "Tallahassee."]]
    gateway = FakeGateway(FakeProviderStream([*chunks, finish_chunk()]))

    events = await _collect(RelayOrchestrator(gateway, _cache()))

    snapshot = ""
    for event in [e for e in events if isinstance(e, TextEvent)]:
        assert event.snapshot == snapshot + event.text
        snapshot = event.snapshot
    assert snapshot == "The capital is Tallahassee."


@pytest.mark.asyncio
async def test_mid_stream_failure_ends_with_single_error() -> None:
    provider = FakeProviderStream([text_chunk("a"), text_chunk("b")], fail_after=1, error="overloaded_error")

    events = await _collect(RelayOrchestrator(FakeGateway(provider), _cache()))

    assert _names(events) == ["connected", "text", "error"]
    assert events[-1] == ErrorEvent(error="overloaded_error")
    assert provider.closed is True


@pytest.mark.asyncio
async def test_synchronous_rejection_becomes_error_event() -> None:
    gateway = FakeGateway(reject=ValueError("model not found"))

    events = await _collect(RelayOrchestrator(gateway, _cache()))

    assert _names(events) == ["connected", "error"]
    assert events[-1].error == "model not found"


@pytest.mark.asyncio
async def test_rejection_when_opening_stream_becomes_error_event() -> None:
    gateway = FakeGateway(open_error=PermissionError("invalid x-api-key"))

    events = await _collect(RelayOrchestrator(gateway, _cache()))

    assert _names(events) == ["connected", "error"]
    assert events[-1].error == "invalid x-api-key"


@pytest.mark.asyncio
async def test_empty_error_message_is_still_reported() -> None:
    gateway = FakeGateway(reject=RuntimeError())

    events = await _collect(RelayOrchestrator(gateway, _cache()))

    assert events[-1] == ErrorEvent(error="Unknown error")


@pytest.mark.asyncio
async def test_exactly_one_terminal_event_always_last() -> None:
    scenarios = [
        FakeGateway(FakeProviderStream([text_chunk("x"), finish_chunk()])),
        FakeGateway(FakeProviderStream([text_chunk("x")], fail_after=0)),
        FakeGateway(reject=RuntimeError("boom")),
    ]
    for gateway in scenarios:
        events = await _collect(RelayOrchestrator(gateway, _cache()))
        terminals = [e for e in events if e.terminal]
        assert len(terminals) == 1
        assert events[-1] is terminals[0]
        assert _names(events).count("connected") == 1
        assert events[0].name == "connected"


@pytest.mark.asyncio
async def test_cached_tool_specs_are_attached() -> None:
    gateway = FakeGateway()

    await _collect(RelayOrchestrator(gateway, _cache([WEATHER_SPEC])), "weather at 40.7128,-74.0060?")

    assert gateway.calls == [{"prompt": "weather at 40.7128,-74.0060?", "tools": [WEATHER_SPEC]}]


@pytest.mark.asyncio
async def test_no_tools_sent_when_cache_empty() -> None:
    gateway = FakeGateway()

    await _collect(RelayOrchestrator(gateway, _cache()))

    assert gateway.calls[0]["tools"] is None


@pytest.mark.asyncio
async def test_tool_use_is_forwarded_as_content_block() -> None:
    provider = FakeProviderStream([
        tool_chunk(0, call_id="call_9", name="get_weather_alerts", arguments='{"location": "1,2"}'),
        finish_chunk("tool_calls"),
    ])

    events = await _collect(RelayOrchestrator(FakeGateway(provider), _cache([WEATHER_SPEC])))

    blocks = [e for e in events if isinstance(e, ContentBlockEvent)]
    assert blocks[0].payload() == {
        "type": "tool_use",
        "id": "call_9",
        "name": "get_weather_alerts",
        "input": {"location": "1,2"},
    }
    assert events[-1] == DoneEvent()


@pytest.mark.asyncio
async def test_message_events_can_be_suppressed() -> None:
    gateway = FakeGateway(FakeProviderStream([text_chunk("x"), finish_chunk()]))

    events = await _collect(RelayOrchestrator(gateway, _cache(), emit_messages=False))

    assert "message" not in _names(events)
    assert events[-1] == DoneEvent()


@pytest.mark.asyncio
async def test_client_disconnect_cancels_completion() -> None:
    provider = FakeProviderStream([text_chunk("one"), text_chunk("two"), finish_chunk()])
    orchestrator = RelayOrchestrator(FakeGateway(provider), _cache())

    events = orchestrator.events("hi")
    assert (await anext(events)).name == "connected"
    assert (await anext(events)).name == "text"
    await events.aclose()

    assert provider.closed is True
    assert provider.served == 1


@pytest.mark.asyncio
async def test_sse_rendering_uses_event_names_and_json_data() -> None:
    gateway = FakeGateway(FakeProviderStream([text_chunk("hi"), finish_chunk()]))

    rendered = [sse async for sse in RelayOrchestrator(gateway, _cache()).stream("hi")]

    assert rendered[0].event == "connected"
    assert json.loads(rendered[0].data) == {"status": "connected"}
    assert rendered[1].event == "text"
    assert json.loads(rendered[1].data) == {"text": "hi", "snapshot": "hi"}
    assert rendered[-1].event == "done"
    assert json.loads(rendered[-1].data) == {"status": "completed"}
