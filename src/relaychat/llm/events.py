"""Upstream events produced by a completion stream.

This is the closed set of things a provider stream can tell the relay.
Provider chunk shapes are translated into these in ``relaychat.llm.gateway``
and never travel further.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TextDelta:
    """Incremental text; ``snapshot`` is all text of the response so far."""

    delta: str
    snapshot: str


@dataclass(frozen=True)
class ContentBlock:
    """A finished content segment, e.g. a text run or a tool-use directive."""

    block: dict[str, Any]


@dataclass(frozen=True)
class FullMessage:
    """The fully assembled assistant message."""

    message: dict[str, Any]


@dataclass(frozen=True)
class StreamFailed:
    """The provider stream broke; no further events follow."""

    error: str


UpstreamEvent = TextDelta | ContentBlock | FullMessage | StreamFailed
