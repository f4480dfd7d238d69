"""Weather tool gateway: MCP tools served as JSON-RPC over HTTP."""

from relaychat.mcp.session import HttpExchangeTransport, McpSession, create_session

__all__ = ["HttpExchangeTransport", "McpSession", "create_session"]
