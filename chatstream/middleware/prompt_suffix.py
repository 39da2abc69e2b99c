"""Prompt suffix stage: toggles Qwen3-style thinking from the last user message."""

from typing import Callable, List, Optional

from ..config.constants import DEFAULT_SUFFIX_MODEL_PATTERN, NO_THINK_SUFFIX, THINK_SUFFIX
from ..models.conversation_types import ConversationMessage, PartType, TurnRole
from ..models.requests import ModelDescriptor
from .base import BaseMiddleware, MiddlewareContext

ModelPredicate = Callable[[ModelDescriptor], bool]

_MARKERS = (NO_THINK_SUFFIX.strip(), THINK_SUFFIX.strip())


def default_model_predicate(model: ModelDescriptor) -> bool:
    return DEFAULT_SUFFIX_MODEL_PATTERN in model.id.lower()


def has_thinking_suffix(text: str) -> bool:
    return any(marker in text for marker in _MARKERS)


def apply_prompt_suffix(messages: List[ConversationMessage], suffix: str) -> List[ConversationMessage]:
    """
    Append ``suffix`` to the final text part of the last user message.

    Returns a new list; the input messages are not modified. Nothing changes
    when there is no user message, it has no text part, or it already
    carries either thinking suffix.
    """
    index = next((i for i in range(len(messages) - 1, -1, -1) if messages[i].role == TurnRole.USER), None)
    if index is None:
        return list(messages)

    message = messages[index]
    if has_thinking_suffix(message.get_text()):
        return list(messages)

    if isinstance(message.content, str):
        updated = message.model_copy(update={"content": message.content + suffix})
    else:
        parts = list(message.content)
        part_index = next((i for i in range(len(parts) - 1, -1, -1) if parts[i].type == PartType.TEXT), None)
        if part_index is None:
            return list(messages)
        part = parts[part_index]
        parts[part_index] = part.model_copy(update={"text": (part.text or "") + suffix})
        updated = message.model_copy(update={"content": parts})

    result = list(messages)
    result[index] = updated
    return result


class PromptSuffixMiddleware(BaseMiddleware):
    """Adds `` /no_think`` (or `` /think`` when the assistant enables thinking) for matching models."""

    name = "prompt_suffix"
    methods = ("completions",)

    def __init__(self, model_predicate: Optional[ModelPredicate] = None):
        self.model_predicate = model_predicate or default_model_predicate

    async def before(self, context: MiddlewareContext) -> None:
        request = context.request
        if request is None or not self.model_predicate(request.model):
            return
        suffix = THINK_SUFFIX if request.assistant.settings.enable_thinking else NO_THINK_SUFFIX
        context.params = request.model_copy(update={"messages": apply_prompt_suffix(request.messages, suffix)})
