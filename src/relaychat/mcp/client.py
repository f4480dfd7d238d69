"""JSON-RPC client for the tool gateway."""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog
from httpx_sse import EventSource

from relaychat.errors import McpClientError
from relaychat.mcp.jsonrpc import JSONRPC_VERSION

logger = structlog.get_logger()

CLIENT_NAME = "relaychat"
PROTOCOL_VERSION = "2025-03-26"


def gateway_endpoint(base_url: str) -> str:
    """The JSON-RPC endpoint for a gateway base URL."""
    url = base_url.rstrip("/")
    return url if url.endswith("/mcp") else f"{url}/mcp"


class McpClient:
    """Talks to the tool gateway; use as an async context manager.

    Replies may come back as plain JSON or as a single SSE ``message`` event.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.endpoint = gateway_endpoint(base_url)
        self._timeout = timeout
        self._transport = transport
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            **(headers or {}),
        }
        self._client: httpx.AsyncClient | None = None
        self._next_id = 0

    async def __aenter__(self) -> McpClient:
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers=self._headers,
        )
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a request and return its ``result``; JSON-RPC errors raise ``McpClientError``."""
        self._next_id += 1
        request_id = self._next_id
        envelope: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method, "id": request_id}
        if params is not None:
            envelope["params"] = params

        reply = await self._post(envelope, request_id)
        if "error" in reply:
            error = reply["error"] or {}
            raise McpClientError(str(error.get("message", "Unknown error")), code=error.get("code"))
        result = reply.get("result")
        if not isinstance(result, dict):
            raise McpClientError(f"Malformed reply to {method}: missing result")
        return result

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        envelope: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            envelope["params"] = params
        resp = await self._http.post(self.endpoint, json=envelope)
        resp.raise_for_status()

    async def initialize(self) -> dict[str, Any]:
        result = await self.request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": CLIENT_NAME, "version": "1.0.0"},
            },
        )
        await self.notify("notifications/initialized")
        logger.info(
            "mcp.client.initialized",
            endpoint=self.endpoint,
            server=(result.get("serverInfo") or {}).get("name"),
        )
        return result

    async def list_tools(self) -> list[dict[str, Any]]:
        result = await self.request("tools/list")
        tools = result.get("tools")
        if not isinstance(tools, list):
            raise McpClientError("Malformed tools/list reply")
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        """Invoke a tool and return its text, decoded from the gateway's JSON string form."""
        result = await self.request("tools/call", {"name": name, "arguments": arguments or {}})
        texts = [
            _decode_text(block.get("text", ""))
            for block in result.get("content") or []
            if block.get("type") == "text"
        ]
        text = "\n".join(texts)
        if result.get("isError"):
            raise McpClientError(text or f"Tool '{name}' failed")
        return text

    @property
    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("McpClient must be used as an async context manager")
        return self._client

    async def _post(self, envelope: dict[str, Any], request_id: int) -> dict[str, Any]:
        async with self._http.stream("POST", self.endpoint, json=envelope) as resp:
            content_type = resp.headers.get("content-type", "")
            if "text/event-stream" in content_type:
                async for sse in EventSource(resp).aiter_sse():
                    if not sse.data:
                        continue
                    reply = json.loads(sse.data)
                    if isinstance(reply, dict) and reply.get("id") == request_id:
                        return reply
                raise McpClientError(f"No reply for request {request_id} in event stream")

            await resp.aread()
            if resp.status_code >= 400 and "application/json" not in content_type:
                resp.raise_for_status()
            reply = resp.json()
            if not isinstance(reply, dict):
                raise McpClientError("Malformed JSON-RPC reply")
            return reply


def _decode_text(text: str) -> str:
    """Tool results travel as JSON-encoded strings; fall back to the raw text."""
    try:
        decoded = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return text
    return decoded if isinstance(decoded, str) else text


def to_function_spec(tool: dict[str, Any]) -> dict[str, Any]:
    """Convert an MCP tool description to the OpenAI function calling format."""
    return {
        "type": "function",
        "function": {
            "name": tool["name"],
            "description": tool.get("description") or "",
            "parameters": tool.get("inputSchema") or {"type": "object", "properties": {}},
        },
    }
