from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional

from ...cancellation.controller import AbortSignal
from ...core.normalization.usage import normalize_usage, to_token_usage, usage_to_dict
from ...models.chunks import (
    BlockCompleteChunk,
    Chunk,
    ReasoningDeltaChunk,
    TextDeltaChunk,
    ToolCallInvocationChunk,
    UsageUpdateChunk,
)
from ...models.usage import TokenUsage
from ..errors import ErrorMapper

# Compatible backends (DeepSeek, Qwen, OpenRouter) put reasoning under one of these
REASONING_FIELDS = ("reasoning_content", "reasoning")


@dataclass
class _PendingToolCall:
    id: str = ""
    name: str = ""
    arguments: List[str] = field(default_factory=list)


def _text(obj: Any, name: str) -> Optional[str]:
    value = getattr(obj, name, None)
    return value if isinstance(value, str) and value else None


def _parse_arguments(raw: str, provider: str) -> Dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ErrorMapper.malformed_response(provider, f"tool call arguments are not JSON ({e})")
    if not isinstance(parsed, dict):
        raise ErrorMapper.malformed_response(provider, "tool call arguments must be a JSON object")
    return parsed


async def translate_chat_stream(
    stream: AsyncIterator[Any],
    provider: str,
    signal: Optional[AbortSignal] = None,
) -> AsyncGenerator[Chunk, None]:
    """Turn a Chat Completions chunk stream into canonical chunks.

    Tool call fragments are accumulated by index and emitted once the
    backend finishes the block. Usage snapshots are merged so the reported
    counts never go down.
    """
    usage = TokenUsage()
    finish_reason: Optional[str] = None
    tool_calls: Dict[int, _PendingToolCall] = {}

    async for event in stream:
        if signal is not None and signal.aborted:
            return

        raw_usage = getattr(event, "usage", None)
        if raw_usage is not None:
            usage_dict = usage_to_dict(raw_usage)
            if usage_dict:
                usage = usage.merge_max(to_token_usage(normalize_usage(usage_dict, provider)))
                yield UsageUpdateChunk(usage=usage)

        choices = getattr(event, "choices", None)
        if not isinstance(choices, list) or not choices:
            continue
        choice = choices[0]
        delta = getattr(choice, "delta", None)

        if delta is not None:
            for name in REASONING_FIELDS:
                reasoning = _text(delta, name)
                if reasoning:
                    yield ReasoningDeltaChunk(text=reasoning)
                    break

            content = _text(delta, "content")
            if content:
                yield TextDeltaChunk(text=content)

            fragments = getattr(delta, "tool_calls", None)
            if isinstance(fragments, list):
                for fragment in fragments:
                    index = getattr(fragment, "index", 0)
                    pending = tool_calls.setdefault(index if isinstance(index, int) else 0, _PendingToolCall())
                    pending.id = _text(fragment, "id") or pending.id
                    function = getattr(fragment, "function", None)
                    if function is not None:
                        pending.name = _text(function, "name") or pending.name
                        arguments = _text(function, "arguments")
                        if arguments:
                            pending.arguments.append(arguments)

        reason = _text(choice, "finish_reason")
        if reason:
            finish_reason = reason

    for index in sorted(tool_calls):
        pending = tool_calls[index]
        if not pending.name:
            raise ErrorMapper.malformed_response(provider, f"tool call {index} has no name")
        yield ToolCallInvocationChunk(
            tool_call_id=pending.id or f"call_{index}",
            name=pending.name,
            arguments=_parse_arguments("".join(pending.arguments), provider),
        )

    yield BlockCompleteChunk(finish_reason=finish_reason, usage=None if usage.is_empty() else usage)
