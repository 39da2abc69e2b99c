from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Union
from enum import Enum


class TurnRole(str, Enum):
    """Conversation turn roles."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class PartType(str, Enum):
    """Kinds of content a message part can carry."""
    TEXT = "text"
    IMAGE = "image"
    REASONING = "reasoning"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    FILE = "file"


class MessagePart(BaseModel):
    """One content part of a multi-part message.

    ``provider_metadata`` holds opaque per-backend fields keyed by provider
    id (for example ``{"google": {"thought_signature": "..."}}``) that must
    be echoed back to that backend on the next turn.
    """

    type: PartType = PartType.TEXT
    text: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    provider_metadata: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class ConversationMessage(BaseModel):
    """Message format for LLM providers."""

    role: TurnRole
    content: Union[str, List[MessagePart]]
    name: Optional[str] = None

    def parts(self) -> List[MessagePart]:
        """Content as a part list; plain strings become one text part."""
        if isinstance(self.content, str):
            return [MessagePart(type=PartType.TEXT, text=self.content)]
        return list(self.content)

    def get_text(self) -> str:
        """Concatenate the text parts of this message."""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text or "" for p in self.content if p.type == PartType.TEXT)
