"""Health check endpoint."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Request

from relaychat import __version__

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict:
    """Status, service name and tool augmentation state."""
    config = request.app.state.config
    gateway = request.app.state.gateway
    tools_cache = request.app.state.tools_cache

    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "service": config.service_name,
        "version": __version__,
        "model": config.llm.model,
        "tools_enabled": bool(tools_cache.tools),
        "tool_count": len(tools_cache.tools),
        "llm_stats": gateway.stats,
    }
