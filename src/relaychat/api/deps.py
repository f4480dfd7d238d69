"""Request-scoped dependencies for the relay routes."""

from __future__ import annotations

from fastapi import Request

from relaychat.config import RelayConfig
from relaychat.relay.orchestrator import RelayOrchestrator
from relaychat.relay.tools import McpToolsCache


def get_config(request: Request) -> RelayConfig:
    return request.app.state.config


def get_tools_cache(request: Request) -> McpToolsCache:
    return request.app.state.tools_cache


def get_orchestrator(request: Request) -> RelayOrchestrator:
    """A fresh orchestrator per request; only the gateway and tool cache are shared."""
    return RelayOrchestrator(
        request.app.state.gateway,
        get_tools_cache(request),
        emit_messages=get_config(request).emit_messages,
    )
