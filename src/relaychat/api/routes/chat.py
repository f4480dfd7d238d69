"""Streaming chat endpoint."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from relaychat.api.deps import get_config, get_orchestrator
from relaychat.config import RelayConfig
from relaychat.relay.orchestrator import RelayOrchestrator

logger = structlog.get_logger()

router = APIRouter()

MISSING_MESSAGE = "Message parameter required"


@router.get("/chat/stream", response_model=None)
async def chat_stream(
    message: str | None = None,
    config: RelayConfig = Depends(get_config),
    orchestrator: RelayOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Relay one user message to the model and stream the reply as SSE."""
    if not message:
        logger.info("relay.request.rejected", reason="missing_message")
        return JSONResponse({"error": MISSING_MESSAGE}, status_code=400)

    return EventSourceResponse(
        orchestrator.stream(message),
        ping=config.ping_interval_s,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
