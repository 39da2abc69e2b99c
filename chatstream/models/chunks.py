"""Canonical streaming events.

Every provider adapter translates its native stream into the chunk variants
defined here. Chunks are frozen once built; consumers receive them in the
order the adapter produced them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from .usage import TokenUsage


class ChunkType(str, Enum):
    """Discriminator for the chunk union."""
    TEXT_DELTA = "text_delta"
    REASONING_DELTA = "reasoning_delta"
    TOOL_CALL_INVOCATION = "tool_call_invocation"
    TOOL_CALL_RESULT = "tool_call_result"
    BLOCK_COMPLETE = "block_complete"
    USAGE_UPDATE = "usage_update"
    ERROR = "error"


@dataclass(frozen=True)
class TextDeltaChunk:
    """Incremental piece of assistant text."""
    text: str
    type: ChunkType = field(default=ChunkType.TEXT_DELTA, init=False)


@dataclass(frozen=True)
class ReasoningDeltaChunk:
    """Incremental piece of model reasoning ("thinking") text."""
    text: str
    signature: Optional[str] = None
    type: ChunkType = field(default=ChunkType.REASONING_DELTA, init=False)


@dataclass(frozen=True)
class ToolCallInvocationChunk:
    """The model asked for a tool to be called."""
    tool_call_id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    type: ChunkType = field(default=ChunkType.TOOL_CALL_INVOCATION, init=False)


@dataclass(frozen=True)
class ToolCallResultChunk:
    """Outcome of a tool call, fed back into the stream."""
    tool_call_id: str
    name: str
    result: Any = None
    is_error: bool = False
    type: ChunkType = field(default=ChunkType.TOOL_CALL_RESULT, init=False)


@dataclass(frozen=True)
class BlockCompleteChunk:
    """The provider finished one response block."""
    finish_reason: Optional[str] = None
    usage: Optional[TokenUsage] = None
    type: ChunkType = field(default=ChunkType.BLOCK_COMPLETE, init=False)


@dataclass(frozen=True)
class UsageUpdateChunk:
    """Cumulative token usage reported mid-stream or at its end."""
    usage: TokenUsage
    type: ChunkType = field(default=ChunkType.USAGE_UPDATE, init=False)


@dataclass(frozen=True)
class ErrorChunk:
    """Terminal failure, carrying a normalized error mapping.

    The mapping follows the error normalization rule: ``message``, ``name``
    and ``stack`` when built from an exception, fewer keys otherwise.
    """
    error: Dict[str, Any] = field(default_factory=dict)
    type: ChunkType = field(default=ChunkType.ERROR, init=False)

    @property
    def message(self) -> str:
        return str(self.error.get("message", ""))


Chunk = Union[
    TextDeltaChunk,
    ReasoningDeltaChunk,
    ToolCallInvocationChunk,
    ToolCallResultChunk,
    BlockCompleteChunk,
    UsageUpdateChunk,
    ErrorChunk,
]

CHUNK_CLASSES = (
    TextDeltaChunk,
    ReasoningDeltaChunk,
    ToolCallInvocationChunk,
    ToolCallResultChunk,
    BlockCompleteChunk,
    UsageUpdateChunk,
    ErrorChunk,
)


def is_chunk(value: Any) -> bool:
    """Return True if value is one of the canonical chunk variants."""
    return isinstance(value, CHUNK_CLASSES)
