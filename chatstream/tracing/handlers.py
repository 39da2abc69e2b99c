"""
Result and stream trace handlers.

Each handler reports usage (and for streams, the accumulated transcript) to
the span manager and ends the span exactly once, whether the wrapped result
completes, fails or is abandoned by the consumer.
"""

import json
from typing import Any, AsyncGenerator, AsyncIterator, List, Mapping, Optional, TypeVar

from ..core.normalization.usage import extract_usage
from ..models.chunks import (
    BlockCompleteChunk,
    Chunk,
    ErrorChunk,
    ReasoningDeltaChunk,
    TextDeltaChunk,
    ToolCallInvocationChunk,
    UsageUpdateChunk,
)
from ..models.usage import TokenUsage
from .manager import SpanManager
from .span import Span

T = TypeVar("T")

__all__ = ["extract_usage", "handle_result", "handle_message_stream", "handle_chunk_stream"]


def handle_result(result: T, span: Span, spans: SpanManager, model_name: Optional[str] = None) -> T:
    """Report usage found in a completed result, end the span, return the result unchanged."""
    try:
        usage = extract_usage(result)
        if usage is not None:
            spans.report_usage(span, usage)
    finally:
        spans.end_span(span)
    return result


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _json(value: Any) -> str:
    if hasattr(value, "model_dump"):
        value = value.model_dump()
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def _block_text(block: Any) -> str:
    """Transcript text for one content block of a complete message."""
    block_type = _get(block, "type")
    if block_type == "text":
        return _get(block, "text") or ""
    if block_type == "tool_use":
        return f"{_get(block, 'name')}: {_json(_get(block, 'input') or {})}"
    if block_type == "thinking":
        return _get(block, "thinking") or ""
    if block_type == "redacted_thinking":
        return _get(block, "data") or ""
    if block_type in ("web_search_tool_result", "search_result"):
        content = _get(block, "content")
        return content if isinstance(content, str) else _json(content)
    return _json(block)


class _MessageAccumulator:
    """Builds a transcript and running usage from message-stream events."""

    def __init__(self):
        self.parts: List[str] = []
        self.usage: Optional[TokenUsage] = None

    @property
    def transcript(self) -> str:
        return "".join(self.parts)

    def add_usage(self, raw: Any) -> bool:
        usage = extract_usage(raw) if raw is not None else None
        if usage is None:
            return False
        merged = usage if self.usage is None else self.usage.merge_max(usage)
        if merged == self.usage:
            return False
        self.usage = merged
        return True

    def add(self, message: Any) -> bool:
        """Fold one event into the transcript. Returns True if the transcript grew."""
        before = len(self.parts)
        event_type = _get(message, "type")

        if event_type == "content_block_start":
            block = _get(message, "content_block")
            if _get(block, "type") == "tool_use":
                self.parts.append(f"{_get(block, 'name')}: ")
            elif _get(block, "type") in ("web_search_tool_result", "search_result", "redacted_thinking"):
                self.parts.append(_block_text(block))
        elif event_type == "content_block_delta":
            delta = _get(message, "delta")
            delta_type = _get(delta, "type")
            if delta_type == "text_delta":
                self.parts.append(_get(delta, "text") or "")
            elif delta_type == "thinking_delta":
                self.parts.append(_get(delta, "thinking") or "")
            elif delta_type == "input_json_delta":
                self.parts.append(_get(delta, "partial_json") or "")
        elif event_type == "message_start":
            self.add_usage(_get(_get(message, "message"), "usage"))
        elif event_type == "message_delta":
            self.add_usage(_get(message, "usage"))
        elif event_type in ("content_block_stop", "message_stop", "ping"):
            pass
        else:
            content = _get(message, "content")
            if isinstance(content, list):
                self.parts.extend(_block_text(block) for block in content)
            elif isinstance(content, str):
                self.parts.append(content)
            else:
                self.parts.append(_json(message))
            self.add_usage(message)

        self.parts = [p for p in self.parts if p]
        return len(self.parts) > before


async def handle_message_stream(
    messages: AsyncIterator[Any],
    span: Span,
    spans: SpanManager,
    model_name: Optional[str] = None,
) -> AsyncGenerator[Any, None]:
    """
    Pass message-stream events through while tracing them.

    Accumulates a transcript (text, ``"name: input"`` for tool use,
    thinking and redacted thinking, search result content, JSON for
    anything else) and usage, reporting both as they grow and once more at
    the end. An error ends the span with that error and is re-raised.
    """
    acc = _MessageAccumulator()
    ended = False
    last = None
    try:
        async for message in messages:
            last = message
            usage_before = acc.usage
            if acc.add(message):
                spans.report_stream(span, model_name, acc.transcript, message)
            if acc.usage is not None and acc.usage != usage_before:
                spans.report_usage(span, acc.usage)
            yield message
    except GeneratorExit:
        raise
    except BaseException as e:
        ended = True
        spans.end_span(span, error=e)
        raise
    finally:
        if not ended:
            spans.report_stream(span, model_name, acc.transcript, last)
            if acc.usage is not None:
                spans.report_usage(span, acc.usage)
            spans.end_span(span)


async def handle_chunk_stream(
    chunks: AsyncIterator[Chunk],
    span: Span,
    spans: SpanManager,
    model_name: Optional[str] = None,
) -> AsyncGenerator[Chunk, None]:
    """Same guarantees as ``handle_message_stream`` for canonical chunk streams."""
    parts: List[str] = []
    usage: Optional[TokenUsage] = None
    ended = False
    last: Optional[Chunk] = None
    try:
        async for chunk in chunks:
            last = chunk
            piece = None
            if isinstance(chunk, (TextDeltaChunk, ReasoningDeltaChunk)):
                piece = chunk.text
            elif isinstance(chunk, ToolCallInvocationChunk):
                piece = f"{chunk.name}: {_json(chunk.arguments)}"
            elif isinstance(chunk, (UsageUpdateChunk, BlockCompleteChunk)) and chunk.usage is not None:
                usage = chunk.usage if usage is None else usage.merge_max(chunk.usage)
                spans.report_usage(span, usage)
            elif isinstance(chunk, ErrorChunk):
                span.set_attribute("error", chunk.error)
            if piece:
                parts.append(piece)
                spans.report_stream(span, model_name, "".join(parts), chunk)
            yield chunk
    except GeneratorExit:
        raise
    except BaseException as e:
        ended = True
        spans.end_span(span, error=e)
        raise
    finally:
        if not ended:
            spans.report_stream(span, model_name, "".join(parts), last)
            if usage is not None:
                spans.report_usage(span, usage)
            spans.end_span(span)
