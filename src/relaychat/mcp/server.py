"""Tool gateway: FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relaychat import __version__
from relaychat.config import RelayConfig, get_config
from relaychat.logging import setup_logging
from relaychat.tools.nws import NwsClient
from relaychat.tools.weather import build_weather_registry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the tool registry once; it is read-only afterwards."""
    config: RelayConfig = app.state.config
    setup_logging(config.mcp.server_name, level=config.log_level, fmt=config.log_format)

    nws = getattr(app.state, "nws", None) or NwsClient(
        config.mcp.nws_api_base,
        user_agent=config.mcp.user_agent,
        timeout=config.mcp.request_timeout_s,
    )
    registry = build_weather_registry(nws)

    app.state.nws = nws
    app.state.registry = registry

    logger.info(
        "mcp.ready",
        server=config.mcp.server_name,
        tools=[tool.name for tool in registry.supported()],
    )

    yield

    logger.info("mcp.stopped")


def create_app(config: RelayConfig | None = None) -> FastAPI:
    """Create the tool gateway application."""
    config = config or get_config()
    app = FastAPI(
        title="relaychat weather tool gateway",
        version=__version__,
        description="National Weather Service tools served over MCP JSON-RPC.",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.mcp.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "x-user-id", "x-session-id"],
    )

    from relaychat.mcp.routes import router

    app.include_router(router, tags=["mcp"])
    return app


app = create_app()


def main() -> None:
    """Run the tool gateway directly."""
    config = get_config()
    setup_logging(config.mcp.server_name, level=config.log_level, fmt=config.log_format)
    uvicorn.run(
        "relaychat.mcp.server:app",
        host=config.mcp.host,
        port=config.mcp.port,
        log_level="warning",
    )


if __name__ == "__main__":
    main()
