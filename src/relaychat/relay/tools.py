"""Tool specs discovered from the tool gateway at startup."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from relaychat.mcp.client import McpClient, to_function_spec

logger = structlog.get_logger()


@dataclass
class ToolDiscovery:
    """Outcome of the startup handshake with the tool gateway."""

    tools: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class McpToolsCache:
    """Write-once holder for the tool specs advertised to the model.

    Empty until populated; stays empty for the process lifetime when discovery
    fails or is disabled.
    """

    def __init__(self) -> None:
        self._tools: list[dict[str, Any]] | None = None

    @property
    def populated(self) -> bool:
        return self._tools is not None

    @property
    def tools(self) -> list[dict[str, Any]]:
        return list(self._tools or [])

    def populate(self, discovery: ToolDiscovery) -> None:
        if self._tools is not None:
            raise RuntimeError("tool cache is already populated")
        self._tools = list(discovery.tools) if discovery.ok else []


async def discover_tools(
    url: str,
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ToolDiscovery:
    """Handshake with the gateway once and fetch its tools as function specs."""
    try:
        async with McpClient(url, timeout=timeout, transport=transport) as client:
            await client.initialize()
            tools = await client.list_tools()
        specs = [to_function_spec(tool) for tool in tools]
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
        logger.warning("relay.tools.discovery_failed", url=url, error=error)
        return ToolDiscovery(error=error)

    logger.info("relay.tools.discovered", url=url, tools=[s["function"]["name"] for s in specs])
    return ToolDiscovery(tools=specs)
