"""Tool gateway endpoints: health, tool description and JSON-RPC invocation."""

from __future__ import annotations

import json
import time
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from relaychat.mcp.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    PARSE_ERROR,
    JsonRpcRequest,
    error_envelope,
)
from relaychat.mcp.session import HttpExchangeTransport, McpSession, create_session

logger = structlog.get_logger()

router = APIRouter()

_USER_CONTEXT_HEADERS = {"x-user-id": "user_id", "x-session-id": "session_id"}


@router.get("/health")
async def health() -> dict:
    """Liveness check."""
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


@router.get("/mcp")
async def describe_tools(request: Request) -> dict:
    """Enabled tools with their argument schemas. Pure; always 200."""
    config = request.app.state.config
    registry = request.app.state.registry
    return {
        "id": f"mcp_list_tools_{int(time.time() * 1000)}",
        "type": "mcp_list_tools",
        "server_label": config.mcp.server_name,
        "tools": registry.describe(),
    }


def _user_context(request: Request) -> dict[str, Any]:
    return {
        key: request.headers[header]
        for header, key in _USER_CONTEXT_HEADERS.items()
        if header in request.headers
    }


async def _read_envelope(request: Request) -> JsonRpcRequest | JSONResponse:
    """Parse the body into a request, or an error response for malformed envelopes."""
    try:
        body = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("mcp.parse_error", error=str(e))
        return JSONResponse(error_envelope(PARSE_ERROR, "Parse error"), status_code=400)

    if not isinstance(body, dict) or body.get("jsonrpc") != JSONRPC_VERSION:
        logger.warning("mcp.invalid_envelope", body_type=type(body).__name__)
        return JSONResponse(
            error_envelope(INVALID_REQUEST, "Invalid Request: expected a JSON-RPC 2.0 object"),
            status_code=400,
        )

    try:
        return JsonRpcRequest.model_validate(body)
    except ValidationError as e:
        logger.warning("mcp.invalid_envelope", errors=e.error_count())
        request_id = body.get("id") if isinstance(body.get("id"), (str, int)) else None
        return JSONResponse(
            error_envelope(INVALID_REQUEST, "Invalid Request", request_id),
            status_code=400,
        )


@router.post("/mcp", response_model=None)
async def invoke(request: Request) -> Response:
    """Handle one JSON-RPC message with a fresh session and transport."""
    envelope = await _read_envelope(request)
    if isinstance(envelope, JSONResponse):
        return envelope

    config = request.app.state.config
    registry = request.app.state.registry
    log = logger.bind(method=envelope.method, rpc_id=envelope.id)
    log.debug("mcp.request")

    session: McpSession | None = None
    transport: HttpExchangeTransport | None = None
    try:
        session = create_session(
            registry,
            name=config.mcp.server_name,
            version=config.mcp.server_version,
            user_context=_user_context(request),
        )
        transport = HttpExchangeTransport(accept=request.headers.get("accept", ""))
        await session.connect(transport)
        return await transport.handle_request(envelope)
    except Exception as e:
        log.error("mcp.server_error", error=f"{type(e).__name__}: {e}")
        if transport is not None:
            await transport.close()
        if session is not None:
            await session.close()
        return JSONResponse(
            error_envelope(INTERNAL_ERROR, f"Internal error: {e}"),
            status_code=500,
        )
