"""
chatstream - streaming chat completion runtime.

Runs chat completions against pluggable providers, normalizes their streams
into one chunk vocabulary, and layers timeouts, cancellation, per-topic
queueing, middleware and tracing on top.
"""

from .models import (
    AssistantConfig,
    AssistantSettings,
    BlockCompleteChunk,
    Chunk,
    ChunkType,
    CompletionOutcome,
    CompletionRequest,
    CompletionsResult,
    ConversationMessage,
    ConversationRole,
    ErrorChunk,
    MessagePart,
    ModelDescriptor,
    OutcomeStatus,
    ReasoningDeltaChunk,
    TextDeltaChunk,
    TokenUsage,
    ToolCallInvocationChunk,
    ToolCallResultChunk,
    UsageUpdateChunk,
)
from .cancellation import AbortReason, AbortRegistry, StreamAbortController
from .config import RuntimeSettings, load_settings
from .orchestration import (
    MiddlewareError,
    Orchestrator,
    RequestTimeoutError,
    UserCancelledError,
)
from .middleware import BaseMiddleware, MiddlewareContext, MiddlewarePipeline
from .providers import ProviderAdapter, ProviderError, ProviderRegistry
from .queue import TopicQueue, TopicQueueRegistry
from .tracing import InMemoryTraceSink, SpanManager, TraceSink

__version__ = "0.1.0"

__all__ = [
    "Orchestrator",
    "RuntimeSettings",
    "load_settings",
    # Models
    "AssistantConfig",
    "AssistantSettings",
    "Chunk",
    "ChunkType",
    "TextDeltaChunk",
    "ReasoningDeltaChunk",
    "ToolCallInvocationChunk",
    "ToolCallResultChunk",
    "BlockCompleteChunk",
    "UsageUpdateChunk",
    "ErrorChunk",
    "CompletionOutcome",
    "CompletionRequest",
    "CompletionsResult",
    "ConversationMessage",
    "ConversationRole",
    "MessagePart",
    "ModelDescriptor",
    "OutcomeStatus",
    "TokenUsage",
    # Cancellation
    "AbortReason",
    "AbortRegistry",
    "StreamAbortController",
    # Errors
    "MiddlewareError",
    "RequestTimeoutError",
    "UserCancelledError",
    "ProviderError",
    # Extension points
    "BaseMiddleware",
    "MiddlewareContext",
    "MiddlewarePipeline",
    "ProviderAdapter",
    "ProviderRegistry",
    "TopicQueue",
    "TopicQueueRegistry",
    "SpanManager",
    "TraceSink",
    "InMemoryTraceSink",
]
