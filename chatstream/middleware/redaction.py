"""Reasoning redaction stage: strips the withheld-reasoning marker from reasoning deltas."""

import dataclasses
from typing import AsyncGenerator, AsyncIterator

from ..config.constants import DEFAULT_REASONING_MARKER
from ..models.chunks import Chunk, ReasoningDeltaChunk
from .base import BaseMiddleware, MiddlewareContext


def redact_reasoning(text: str, marker: str = DEFAULT_REASONING_MARKER) -> str:
    """Remove every occurrence of ``marker``. Applying it twice changes nothing more."""
    if not marker:
        return text
    return text.replace(marker, "")


class ReasoningRedactionMiddleware(BaseMiddleware):
    """Rewrites ``reasoning_delta`` chunks only; other chunks pass untouched."""

    name = "reasoning_redaction"
    methods = ("completions",)

    def __init__(self, marker: str = DEFAULT_REASONING_MARKER):
        self.marker = marker

    def wrap_stream(self, context: MiddlewareContext,
                    stream: AsyncIterator[Chunk]) -> AsyncIterator[Chunk]:
        return self._redact(stream)

    async def _redact(self, stream: AsyncIterator[Chunk]) -> AsyncGenerator[Chunk, None]:
        async for chunk in stream:
            if isinstance(chunk, ReasoningDeltaChunk) and self.marker in chunk.text:
                text = redact_reasoning(chunk.text, self.marker)
                if not text and chunk.signature is None:
                    continue
                chunk = dataclasses.replace(chunk, text=text)
            yield chunk
