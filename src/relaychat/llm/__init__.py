"""Provider access: streaming completions normalized to relay events."""

from relaychat.llm.events import ContentBlock, FullMessage, StreamFailed, TextDelta, UpstreamEvent
from relaychat.llm.gateway import CompletionStream, LLMGateway

__all__ = [
    "CompletionStream",
    "ContentBlock",
    "FullMessage",
    "LLMGateway",
    "StreamFailed",
    "TextDelta",
    "UpstreamEvent",
]
