"""Data models for the completion runtime."""

from .chunks import (
    Chunk,
    ChunkType,
    TextDeltaChunk,
    ReasoningDeltaChunk,
    ToolCallInvocationChunk,
    ToolCallResultChunk,
    BlockCompleteChunk,
    UsageUpdateChunk,
    ErrorChunk,
    is_chunk,
)
from .conversation_types import ConversationMessage, MessagePart, PartType, TurnRole as ConversationRole
from .requests import (
    AssistantConfig,
    AssistantSettings,
    CompletionOutcome,
    CompletionRequest,
    CompletionsResult,
    ModelDescriptor,
    OutcomeStatus,
    ProviderType,
    ToolDescriptor,
)
from .usage import TokenUsage

__all__ = [
    # Chunks
    "Chunk",
    "ChunkType",
    "TextDeltaChunk",
    "ReasoningDeltaChunk",
    "ToolCallInvocationChunk",
    "ToolCallResultChunk",
    "BlockCompleteChunk",
    "UsageUpdateChunk",
    "ErrorChunk",
    "is_chunk",
    "TokenUsage",

    # Conversation models
    "ConversationMessage",
    "ConversationRole",
    "MessagePart",
    "PartType",

    # Requests
    "AssistantConfig",
    "AssistantSettings",
    "CompletionOutcome",
    "CompletionRequest",
    "CompletionsResult",
    "ModelDescriptor",
    "OutcomeStatus",
    "ProviderType",
    "ToolDescriptor",
]
