from __future__ import annotations

import httpx
import pytest
from fakes import FakeGateway, NwsStub, parse_sse
from fastapi import FastAPI
from fastapi.testclient import TestClient

from relaychat.config import RelayConfig
from relaychat.errors import McpClientError
from relaychat.main import create_app as create_relay_app
from relaychat.mcp.client import McpClient, gateway_endpoint, to_function_spec
from relaychat.mcp.server import create_app as create_gateway_app
from relaychat.relay.tools import McpToolsCache, ToolDiscovery, discover_tools
from relaychat.tools.nws import NwsClient
from relaychat.tools.weather import build_weather_registry

TOOL_NAMES = ["get_current_weather", "get_weather_forecast", "get_weather_alerts"]


@pytest.fixture
def gateway_app() -> FastAPI:
    # ASGITransport does not run the lifespan, so build the registry here
    app = create_gateway_app(RelayConfig())
    app.state.registry = build_weather_registry(NwsClient(transport=NwsStub().transport()))
    return app


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def test_gateway_endpoint() -> None:
    assert gateway_endpoint("http://localhost:3000") == "http://localhost:3000/mcp"
    assert gateway_endpoint("http://localhost:3000/") == "http://localhost:3000/mcp"
    assert gateway_endpoint("http://localhost:3000/mcp") == "http://localhost:3000/mcp"


def test_to_function_spec() -> None:
    spec = to_function_spec({"name": "ping", "inputSchema": {"type": "object", "properties": {"x": {}}}})

    assert spec == {
        "type": "function",
        "function": {
            "name": "ping",
            "description": "",
            "parameters": {"type": "object", "properties": {"x": {}}},
        },
    }


@pytest.mark.asyncio
async def test_discovery_returns_function_specs(gateway_app: FastAPI) -> None:
    discovery = await discover_tools("http://gateway", transport=httpx.ASGITransport(app=gateway_app))

    assert discovery.ok
    assert [spec["function"]["name"] for spec in discovery.tools] == TOOL_NAMES
    assert all(spec["type"] == "function" for spec in discovery.tools)
    assert discovery.tools[0]["function"]["parameters"]["required"] == ["location"]


@pytest.mark.asyncio
async def test_discovery_failure_is_reported_not_raised() -> None:
    discovery = await discover_tools("http://gateway", transport=httpx.MockTransport(_refuse))

    assert not discovery.ok
    assert discovery.tools == []
    assert "ConnectError" in discovery.error


@pytest.mark.asyncio
async def test_client_calls_tools_and_decodes_text(gateway_app: FastAPI) -> None:
    async with McpClient("http://gateway", transport=httpx.ASGITransport(app=gateway_app)) as client:
        await client.initialize()
        text = await client.call_tool("get_weather_alerts", {"location": "40.7128,-74.0060"})
        with pytest.raises(McpClientError) as excinfo:
            await client.request("resources/list")

    assert text == "No active weather alerts for 40.7128,-74.006"
    assert excinfo.value.code == -32601


@pytest.mark.asyncio
async def test_client_requires_context_manager() -> None:
    client = McpClient("http://gateway")

    with pytest.raises(RuntimeError):
        await client.list_tools()


def test_cache_is_write_once() -> None:
    cache = McpToolsCache()
    assert not cache.populated
    assert cache.tools == []

    cache.populate(ToolDiscovery(tools=[{"type": "function", "function": {"name": "a"}}]))

    assert cache.populated
    with pytest.raises(RuntimeError):
        cache.populate(ToolDiscovery())


def test_failed_discovery_leaves_cache_empty() -> None:
    cache = McpToolsCache()

    cache.populate(ToolDiscovery(tools=[{"ignored": True}], error="ConnectError: refused"))

    assert cache.populated
    assert cache.tools == []


def test_cache_hands_out_copies() -> None:
    cache = McpToolsCache()
    cache.populate(ToolDiscovery(tools=[{"type": "function"}]))

    cache.tools.clear()

    assert len(cache.tools) == 1


def test_relay_attaches_discovered_tools(gateway_app: FastAPI) -> None:
    gateway = FakeGateway()
    relay = create_relay_app(RelayConfig(mcp_server_url="http://gateway:3000"))
    relay.state.gateway = gateway
    relay.state.mcp_transport = httpx.ASGITransport(app=gateway_app)

    with TestClient(relay) as client:
        health = client.get("/health").json()
        resp = client.get("/chat/stream", params={"message": "Any alerts near 40.7128,-74.0060?"})

    assert health["tools_enabled"] is True
    assert health["tool_count"] == 3
    assert parse_sse(resp.text)[-1][0] == "done"
    assert [spec["function"]["name"] for spec in gateway.calls[0]["tools"]] == TOOL_NAMES
