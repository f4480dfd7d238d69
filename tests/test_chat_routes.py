from __future__ import annotations

import json
from datetime import datetime

import httpx
import pytest
from fakes import FakeGateway, FakeProviderStream, finish_chunk, parse_sse, text_chunk
from fastapi.testclient import TestClient

from relaychat.config import RelayConfig
from relaychat.main import create_app


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(FakeProviderStream([text_chunk("Tallahassee"), text_chunk("."), finish_chunk()]))


@pytest.fixture
def client(gateway: FakeGateway):
    app = create_app(RelayConfig(mcp_server_url=None))
    app.state.gateway = gateway
    with TestClient(app) as test_client:
        yield test_client


def test_missing_message_is_rejected_before_streaming(client: TestClient, gateway: FakeGateway) -> None:
    resp = client.get("/chat/stream")

    assert resp.status_code == 400
    assert resp.json() == {"error": "Message parameter required"}
    assert "text/event-stream" not in resp.headers["content-type"]
    assert gateway.calls == []


def test_empty_message_is_rejected(client: TestClient) -> None:
    resp = client.get("/chat/stream", params={"message": ""})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Message parameter required"


def test_stream_delivers_events_in_order(client: TestClient, gateway: FakeGateway) -> None:
    resp = client.get("/chat/stream", params={"message": "What is the capital of Florida?"})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache"

    events = parse_sse(resp.text)
    names = [name for name, _ in events]
    assert names == ["connected", "text", "text", "contentBlock", "message", "done"]
    assert json.loads(events[0][1]) == {"status": "connected"}
    assert json.loads(events[2][1]) == {"text": ".", "snapshot": "Tallahassee."}
    assert json.loads(events[-1][1]) == {"status": "completed"}
    assert gateway.calls == [{"prompt": "What is the capital of Florida?", "tools": None}]


def test_provider_failure_ends_stream_with_error() -> None:
    app = create_app(RelayConfig(mcp_server_url=None))
    app.state.gateway = FakeGateway(reject=PermissionError("invalid x-api-key"))

    with TestClient(app) as test_client:
        resp = test_client.get("/chat/stream", params={"message": "hi"})

    events = parse_sse(resp.text)
    assert [name for name, _ in events] == ["connected", "error"]
    assert json.loads(events[-1][1]) == {"error": "invalid x-api-key"}


def test_message_events_can_be_disabled() -> None:
    app = create_app(RelayConfig(mcp_server_url=None, emit_messages=False))
    app.state.gateway = FakeGateway()

    with TestClient(app) as test_client:
        resp = test_client.get("/chat/stream", params={"message": "hi"})

    assert "message" not in [name for name, _ in parse_sse(resp.text)]


def test_health_reports_service(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["service"] == "chatbot-backend"
    assert data["tools_enabled"] is False
    assert data["tool_count"] == 0
    assert datetime.fromisoformat(data["timestamp"]).tzinfo is not None


def test_health_is_independent_of_streams(client: TestClient) -> None:
    client.get("/chat/stream", params={"message": "hi"})

    resp = client.get("/health")

    assert resp.json()["llm_stats"]["request_count"] == 1


def test_unreachable_tool_server_disables_tools() -> None:
    gateway = FakeGateway()
    app = create_app(RelayConfig(mcp_server_url="http://tools.invalid:3000"))
    app.state.gateway = gateway
    app.state.mcp_transport = httpx.MockTransport(_refuse)

    with TestClient(app) as test_client:
        health = test_client.get("/health").json()
        resp = test_client.get("/chat/stream", params={"message": "hi"})

    assert health["tools_enabled"] is False
    assert [name for name, _ in parse_sse(resp.text)][-1] == "done"
    assert gateway.calls[0]["tools"] is None


def test_cors_allows_configured_origin() -> None:
    app = create_app(RelayConfig(mcp_server_url=None, cors_origins=["http://localhost:5173"]))
    app.state.gateway = FakeGateway()

    with TestClient(app) as test_client:
        resp = test_client.get("/health", headers={"Origin": "http://localhost:5173"})

    assert resp.headers["access-control-allow-origin"] == "http://localhost:5173"


def test_blank_tool_server_url_skips_discovery() -> None:
    attempts: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(500)

    app = create_app(RelayConfig(mcp_server_url="   "))
    app.state.gateway = FakeGateway()
    app.state.mcp_transport = httpx.MockTransport(record)

    with TestClient(app) as test_client:
        assert test_client.get("/health").json()["tools_enabled"] is False

    assert attempts == []
