"""Exception types shared by the relay, the tool gateway client and the CLI."""

from __future__ import annotations


class RelayChatError(Exception):
    """Base class for relaychat errors."""


class McpClientError(RelayChatError):
    """The tool gateway answered with a JSON-RPC error or an unreadable reply."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class ChatStreamError(RelayChatError):
    """The relay refused or broke a chat stream."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CompletionError(RelayChatError):
    """The provider stream failed or was cancelled before a final message."""
