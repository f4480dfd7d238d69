"""relaychat: streaming LLM chat relay with an MCP weather tool gateway."""

__version__ = "1.0.0"
