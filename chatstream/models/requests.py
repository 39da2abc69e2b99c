"""Request and result models for the completion runtime."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .chunks import Chunk
from .conversation_types import ConversationMessage
from .usage import TokenUsage


class ProviderType(str, Enum):
    """Built-in provider ids."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENAI_COMPATIBLE = "openai-compatible"


class ModelDescriptor(BaseModel):
    """Which model to call and through which provider."""
    id: str = Field(..., description="Model identifier sent to the provider")
    provider_id: str = Field(..., description="Key in the provider registry")
    name: Optional[str] = Field(None, description="Display name, defaults to id")

    @property
    def display_name(self) -> str:
        return self.name or self.id


class AssistantSettings(BaseModel):
    """Per-assistant generation settings."""
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    top_p: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_tokens: Optional[int] = Field(None, ge=1)
    enable_thinking: bool = False
    reasoning_effort: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class AssistantConfig(BaseModel):
    """Assistant descriptor: system prompt, model and settings."""
    name: str = "default"
    prompt: Optional[str] = None
    model: ModelDescriptor
    settings: AssistantSettings = Field(default_factory=AssistantSettings)


class ToolDescriptor(BaseModel):
    """Tool the model may invoke."""
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    requires_confirmation: bool = False


class CompletionRequest(BaseModel):
    """
    One streaming completion request.

    ``on_chunk`` receives every chunk in emission order and may be a plain
    function or a coroutine function. ``on_filter_messages`` runs once before
    the request is sent and returns the messages to send.
    """
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    messages: List[ConversationMessage]
    assistant: AssistantConfig
    on_chunk: Callable[[Any], Any]
    on_filter_messages: Optional[Callable[[List[ConversationMessage]], Any]] = None
    tools: Optional[List[ToolDescriptor]] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def model(self) -> ModelDescriptor:
        return self.assistant.model


@dataclass
class CompletionsResult:
    """What the completions pipeline hands back: a chunk stream to drain."""
    stream: AsyncIterator[Chunk]
    metadata: Dict[str, Any] = field(default_factory=dict)


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


USER_NOTICES = {
    OutcomeStatus.SUCCESS: "",
    OutcomeStatus.ERROR: "Request failed",
    OutcomeStatus.TIMEOUT: "Request timed out",
    OutcomeStatus.CANCELLED: "Request was cancelled",
}


@dataclass
class CompletionOutcome:
    """Settled state of one request, returned instead of raising."""
    request_id: str
    status: OutcomeStatus
    text: str = ""
    reasoning: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    chunk_count: int = 0
    error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @property
    def user_notice(self) -> str:
        """Message suitable for the UI: generic failure vs. timeout."""
        return USER_NOTICES[self.status]
