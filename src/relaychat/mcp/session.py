"""Per-request MCP protocol session and the HTTP transport it answers through.

Every POST to the gateway builds a fresh ``McpSession`` bound to a fresh
``HttpExchangeTransport``. Nothing is shared between requests; both objects
are closed when the exchange ends, whichever way it ends.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import structlog
from fastapi import Response
from fastapi.responses import JSONResponse, StreamingResponse
from mcp import types
from starlette.types import Receive, Scope, Send

from relaychat.mcp.jsonrpc import (
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    JsonRpcRequest,
    JsonRpcResponse,
    RpcMethodError,
    error_envelope,
)
from relaychat.tools.base import Tool, ToolRegistry

logger = structlog.get_logger()

ToolHandler = Callable[[dict[str, Any]], Awaitable[types.CallToolResult]]
CloseCallback = Callable[[], Awaitable[None]]

SSE_MEDIA_TYPE = "text/event-stream"


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


class McpSession:
    """Protocol session: registered tools plus JSON-RPC method dispatch."""

    def __init__(self, name: str, version: str, *, user_context: dict[str, Any] | None = None) -> None:
        self.server_info = types.Implementation(name=name, version=version)
        self.user_context = user_context or {}
        self.closed = False
        self._tools: dict[str, tuple[types.Tool, ToolHandler]] = {}
        self._transport: HttpExchangeTransport | None = None

    def register_tool(self, tool: Tool) -> None:
        """Register ``tool``; its string result is packaged as one text content block."""
        spec = types.Tool(
            name=tool.name,
            description=tool.description,
            inputSchema=tool.input_schema,
        )

        async def handler(arguments: dict[str, Any]) -> types.CallToolResult:
            try:
                result = await tool.execute(arguments, self.user_context)
            except Exception as e:
                logger.error("mcp.tool.error", tool=tool.name, error=f"{type(e).__name__}: {e}")
                return types.CallToolResult(
                    content=[types.TextContent(type="text", text=f"Error executing tool '{tool.name}': {e}")],
                    isError=True,
                )
            logger.info("mcp.tool.executed", tool=tool.name, result_length=len(result))
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=json.dumps(result, ensure_ascii=False))],
            )

        self._tools[tool.name] = (spec, handler)

    async def connect(self, transport: HttpExchangeTransport) -> None:
        """Bind to the transport; the transport closes this session when it closes."""
        if self.closed:
            raise RuntimeError("session is closed")
        self._transport = transport
        transport.bind(self)

    async def handle(self, request: JsonRpcRequest) -> dict[str, Any] | None:
        """Dispatch one JSON-RPC message; notifications produce no reply."""
        if self.closed:
            raise RuntimeError("session is closed")

        if request.is_notification:
            logger.debug("mcp.notification", method=request.method)
            return None

        try:
            result = await self._dispatch(request.method, request.params or {})
        except RpcMethodError as e:
            logger.warning("mcp.method_error", method=request.method, code=e.code, error=e.message)
            return error_envelope(e.code, e.message, request.id)

        return JsonRpcResponse(id=request.id, result=result).model_dump(mode="json")

    async def _dispatch(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        if method == "initialize":
            requested = params.get("protocolVersion")
            return _dump(types.InitializeResult(
                protocolVersion=requested if isinstance(requested, str) else types.LATEST_PROTOCOL_VERSION,
                capabilities=types.ServerCapabilities(tools=types.ToolsCapability(listChanged=False)),
                serverInfo=self.server_info,
            ))
        if method == "ping":
            return {}
        if method == "tools/list":
            return _dump(types.ListToolsResult(tools=[spec for spec, _ in self._tools.values()]))
        if method == "tools/call":
            return _dump(await self._call_tool(params))
        raise RpcMethodError(METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _call_tool(self, params: dict[str, Any]) -> types.CallToolResult:
        name = params.get("name")
        arguments = params.get("arguments") or {}
        if not isinstance(name, str) or name not in self._tools:
            raise RpcMethodError(INVALID_PARAMS, f"Tool {name} not found")
        if not isinstance(arguments, dict):
            raise RpcMethodError(INVALID_PARAMS, "Tool arguments must be an object")

        _, handler = self._tools[name]
        logger.info("mcp.tool.call", tool=name)
        return await handler(arguments)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._tools.clear()
        self._transport = None
        logger.debug("mcp.session.closed")


class _ExchangeStreamingResponse(StreamingResponse):
    """SSE reply that closes its transport however sending ends, disconnects included."""

    def __init__(self, content: AsyncIterator[str], *, transport: HttpExchangeTransport, **kwargs: Any) -> None:
        super().__init__(content, **kwargs)
        self._transport = transport

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self._transport.close()


class HttpExchangeTransport:
    """Transport bound to a single HTTP request/response exchange.

    Replies as one SSE ``message`` event when the client accepts
    ``text/event-stream``, otherwise as a plain JSON body. Dispatch always
    finishes before the response starts, so a failed dispatch can still be
    answered with an error envelope.
    """

    def __init__(self, accept: str = "") -> None:
        self.use_sse = SSE_MEDIA_TYPE in accept.lower()
        self.closed = False
        self._session: McpSession | None = None
        self._on_close: list[CloseCallback] = []

    def bind(self, session: McpSession) -> None:
        self._session = session
        self.on_close(session.close)

    def on_close(self, callback: CloseCallback) -> None:
        self._on_close.append(callback)

    async def handle_request(self, request: JsonRpcRequest) -> Response:
        """Drive dispatch for ``request`` and build the HTTP response."""
        if self._session is None:
            raise RuntimeError("transport is not connected to a session")

        try:
            reply = await self._session.handle(request)
        except BaseException:
            await self.close()
            raise

        if reply is None:
            await self.close()
            return Response(status_code=202)

        if not self.use_sse:
            await self.close()
            return JSONResponse(reply)

        return _ExchangeStreamingResponse(
            _message_frames(reply),
            transport=self,
            media_type=SSE_MEDIA_TYPE,
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    async def close(self) -> None:
        """Close the transport and everything bound to it. Idempotent."""
        if self.closed:
            return
        self.closed = True
        callbacks, self._on_close = self._on_close, []
        for callback in callbacks:
            await callback()
        self._session = None
        logger.debug("mcp.transport.closed")


async def _message_frames(reply: dict[str, Any]) -> AsyncIterator[str]:
    yield f"event: message\ndata: {json.dumps(reply, ensure_ascii=False)}\n\n"


def create_session(
    registry: ToolRegistry,
    *,
    name: str,
    version: str,
    user_context: dict[str, Any] | None = None,
) -> McpSession:
    """Build a fresh session with every enabled tool registered."""
    session = McpSession(name, version, user_context=user_context)
    for tool in registry.supported():
        session.register_tool(tool)
    return session
