"""Chat relay: completion stream to client SSE translation."""

from relaychat.relay.orchestrator import RelayOrchestrator
from relaychat.relay.tools import McpToolsCache, ToolDiscovery, discover_tools

__all__ = ["McpToolsCache", "RelayOrchestrator", "ToolDiscovery", "discover_tools"]
