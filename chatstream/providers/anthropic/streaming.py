from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional

from ...cancellation.controller import AbortSignal
from ...core.normalization.usage import normalize_usage, usage_to_dict
from ...models.chunks import (
    BlockCompleteChunk,
    Chunk,
    ReasoningDeltaChunk,
    TextDeltaChunk,
    ToolCallInvocationChunk,
    UsageUpdateChunk,
)
from ...models.usage import TokenUsage
from ..base import ProviderError
from ..errors import ErrorMapper


@dataclass
class _PendingToolUse:
    id: str
    name: str
    partial_json: List[str] = field(default_factory=list)


def _str(obj: Any, name: str) -> Optional[str]:
    value = getattr(obj, name, None)
    return value if isinstance(value, str) else None


class _UsageTracker:
    """Combine message_start (input) and message_delta (cumulative output) usage."""

    def __init__(self):
        self.prompt = 0
        self.completion = 0
        self.usage = TokenUsage()

    def update(self, raw: Any) -> Optional[TokenUsage]:
        data = usage_to_dict(raw)
        if not data:
            return None
        normalized = normalize_usage(data, "anthropic")
        self.prompt = max(self.prompt, normalized["prompt_tokens"])
        self.completion = max(self.completion, normalized["completion_tokens"])
        merged = self.usage.merge_max(TokenUsage.of(self.prompt, self.completion))
        if merged == self.usage:
            return None
        self.usage = merged
        return merged


async def translate_message_stream(
    stream: AsyncIterator[Any],
    provider: str,
    signal: Optional[AbortSignal] = None,
) -> AsyncGenerator[Chunk, None]:
    """Turn raw Messages API stream events into canonical chunks."""
    usage = _UsageTracker()
    tools: Dict[int, _PendingToolUse] = {}
    finish_reason: Optional[str] = None

    async for event in stream:
        if signal is not None and signal.aborted:
            return

        event_type = _str(event, "type")

        if event_type == "message_start":
            message = getattr(event, "message", None)
            updated = usage.update(getattr(message, "usage", None))
            if updated is not None:
                yield UsageUpdateChunk(usage=updated)

        elif event_type == "content_block_start":
            block = getattr(event, "content_block", None)
            if _str(block, "type") == "tool_use":
                index = getattr(event, "index", 0)
                tools[index] = _PendingToolUse(id=_str(block, "id") or "", name=_str(block, "name") or "")

        elif event_type == "content_block_delta":
            delta = getattr(event, "delta", None)
            delta_type = _str(delta, "type")
            if delta_type == "thinking_delta":
                thinking = _str(delta, "thinking")
                if thinking:
                    yield ReasoningDeltaChunk(text=thinking)
            elif delta_type == "signature_delta":
                signature = _str(delta, "signature")
                if signature:
                    yield ReasoningDeltaChunk(text="", signature=signature)
            elif delta_type == "input_json_delta":
                pending = tools.get(getattr(event, "index", 0))
                partial = _str(delta, "partial_json")
                if pending is not None and partial:
                    pending.partial_json.append(partial)
            else:
                text = _str(delta, "text")
                if text:
                    yield TextDeltaChunk(text=text)

        elif event_type == "content_block_stop":
            pending = tools.pop(getattr(event, "index", 0), None)
            if pending is not None:
                yield ToolCallInvocationChunk(
                    tool_call_id=pending.id,
                    name=pending.name,
                    arguments=_parse_input("".join(pending.partial_json), provider),
                )

        elif event_type == "message_delta":
            delta = getattr(event, "delta", None)
            finish_reason = _str(delta, "stop_reason") or finish_reason
            updated = usage.update(getattr(event, "usage", None))
            if updated is not None:
                yield UsageUpdateChunk(usage=updated)

        elif event_type == "error":
            error = getattr(event, "error", None)
            message = _str(error, "message") or "stream error"
            raise ProviderError(f"Anthropic API error: {message}", provider)

    yield BlockCompleteChunk(
        finish_reason=finish_reason,
        usage=None if usage.usage.is_empty() else usage.usage,
    )


def _parse_input(raw: str, provider: str) -> Dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ErrorMapper.malformed_response(provider, f"tool input is not JSON ({e})")
    if not isinstance(parsed, dict):
        raise ErrorMapper.malformed_response(provider, "tool input must be a JSON object")
    return parsed
