"""Field scrubbing stage: neutralizes thought signatures carried over from another model."""

from typing import Any, List

from ..config.constants import THOUGHT_SIGNATURE_FIELD, THOUGHT_SIGNATURE_PLACEHOLDER
from ..models.conversation_types import ConversationMessage
from .base import BaseMiddleware, MiddlewareContext


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: THOUGHT_SIGNATURE_PLACEHOLDER if key == THOUGHT_SIGNATURE_FIELD else _scrub(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    return value


def scrub_thought_signatures(messages: List[ConversationMessage]) -> List[ConversationMessage]:
    """
    Replace every ``thought_signature`` in part provider metadata with the
    validator-skip placeholder. Returns new messages; inputs are untouched.
    """
    result = []
    for message in messages:
        if isinstance(message.content, str) or not any(p.provider_metadata for p in message.content):
            result.append(message)
            continue
        parts = [
            part.model_copy(update={"provider_metadata": _scrub(part.provider_metadata)})
            if part.provider_metadata else part
            for part in message.content
        ]
        result.append(message.model_copy(update={"content": parts}))
    return result


class FieldScrubbingMiddleware(BaseMiddleware):
    name = "field_scrubbing"
    methods = ("completions",)

    async def before(self, context: MiddlewareContext) -> None:
        request = context.request
        if request is None:
            return
        context.params = request.model_copy(update={"messages": scrub_thought_signatures(request.messages)})
