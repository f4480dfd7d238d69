"""Chat relay: FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relaychat import __version__
from relaychat.config import RelayConfig, get_config
from relaychat.llm.gateway import LLMGateway
from relaychat.logging import setup_logging
from relaychat.relay.tools import McpToolsCache, ToolDiscovery, discover_tools

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup/shutdown lifecycle."""
    config: RelayConfig = app.state.config
    setup_logging(config.service_name, level=config.log_level, fmt=config.log_format)

    logger.info("relay.starting", version=__version__, model=config.llm.model)

    gateway = getattr(app.state, "gateway", None) or LLMGateway(config.llm)

    # One-shot tool discovery; failure leaves tools disabled until restart
    tools_cache = McpToolsCache()
    if config.tools_enabled:
        discovery = await discover_tools(
            config.mcp_server_url,
            timeout=config.mcp_timeout_s,
            transport=getattr(app.state, "mcp_transport", None),
        )
    else:
        discovery = ToolDiscovery()
        logger.info("relay.tools.disabled", reason="no tool server configured")
    tools_cache.populate(discovery)

    app.state.gateway = gateway
    app.state.tools_cache = tools_cache

    logger.info(
        "relay.ready",
        tools=[spec["function"]["name"] for spec in tools_cache.tools],
        tool_count=len(tools_cache.tools),
    )

    yield

    logger.info("relay.stopped")


def create_app(config: RelayConfig | None = None) -> FastAPI:
    """Create the relay application."""
    config = config or get_config()
    app = FastAPI(
        title="relaychat relay",
        version=__version__,
        description="Streams LLM completions to browsers over server-sent events.",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Register routes
    from relaychat.api.routes.chat import router as chat_router
    from relaychat.api.routes.health import router as health_router

    app.include_router(health_router, tags=["health"])
    app.include_router(chat_router, tags=["chat"])

    return app


app = create_app()


def main() -> None:
    """Run the relay directly."""
    config = get_config()
    setup_logging(config.service_name, level=config.log_level, fmt=config.log_format)
    uvicorn.run(
        "relaychat.main:app",
        host=config.host,
        port=config.port,
        log_level="warning",
    )


if __name__ == "__main__":
    main()
