"""Client side of the chat stream."""

from relaychat.client.stream import ChatResult, ChatStreamClient, ChatStreamEvent, StreamBuffer

__all__ = ["ChatResult", "ChatStreamClient", "ChatStreamEvent", "StreamBuffer"]
