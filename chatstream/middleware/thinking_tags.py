"""
Thinking-tag extraction stage.

Some backends inline their reasoning in the text stream between tags such
as ``<think>...</think>``. This stage moves that content into
``reasoning_delta`` chunks, including tags split across chunk boundaries.
"""

from dataclasses import dataclass
from typing import AsyncGenerator, AsyncIterator, List, Optional, Tuple

from ..models.chunks import Chunk, ReasoningDeltaChunk, TextDeltaChunk
from ..models.requests import ModelDescriptor
from .base import BaseMiddleware, MiddlewareContext


@dataclass(frozen=True)
class TagConfig:
    opening_tag: str
    closing_tag: str


THINK_TAG = TagConfig("<think>", "</think>")
THOUGHT_TAG = TagConfig("<thought>", "</thought>")
HASH_TAG = TagConfig("###Thinking", "###Response")
KIMI_TAG = TagConfig("◁think▷", "◁/think▷")
THINKING_TAG = TagConfig("<thinking>", "</thinking>")

REASONING_TAGS = (THINK_TAG, THOUGHT_TAG, HASH_TAG, KIMI_TAG, THINKING_TAG)

# Model id fragment -> tag family; anything else uses <think>
MODEL_TAGS = (
    ("qwen3", THINK_TAG),
    ("gemini-2.5", THOUGHT_TAG),
    ("kimi-vl-a3b-thinking", KIMI_TAG),
)


def tag_for_model(model: Optional[ModelDescriptor]) -> TagConfig:
    model_id = model.id.lower() if model is not None else ""
    for fragment, tag in MODEL_TAGS:
        if fragment in model_id:
            return tag
    return THINK_TAG


def _partial_tag_length(text: str, tag: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``tag``."""
    for length in range(min(len(tag) - 1, len(text)), 0, -1):
        if text.endswith(tag[:length]):
            return length
    return 0


class TagExtractor:
    """
    Incremental splitter of text into (content, inside_tag) pieces.

    Text that might be the start of a tag is held back until the next call
    (or ``finalize``) decides it.
    """

    def __init__(self, config: TagConfig):
        self.config = config
        self.inside = False
        self._buffer = ""
        self._after_close = False

    def process(self, text: str) -> List[Tuple[str, bool]]:
        self._buffer += text
        pieces: List[Tuple[str, bool]] = []
        while self._buffer:
            tag = self.config.closing_tag if self.inside else self.config.opening_tag
            index = self._buffer.find(tag)
            if index == -1:
                keep = _partial_tag_length(self._buffer, tag)
                self._emit(pieces, self._buffer[:len(self._buffer) - keep])
                self._buffer = self._buffer[len(self._buffer) - keep:]
                break
            self._emit(pieces, self._buffer[:index])
            self._buffer = self._buffer[index + len(tag):]
            self._after_close = self.inside
            self.inside = not self.inside
        return pieces

    def finalize(self) -> List[Tuple[str, bool]]:
        pieces: List[Tuple[str, bool]] = []
        self._emit(pieces, self._buffer)
        self._buffer = ""
        return pieces

    def _emit(self, pieces: List[Tuple[str, bool]], content: str) -> None:
        if self._after_close and not self.inside:
            # Drop the separator newline(s) right after a closing tag
            content = content.lstrip("\n")
            if content:
                self._after_close = False
        if content:
            pieces.append((content, self.inside))


def extract_thinking(text: str, config: TagConfig = THINK_TAG) -> Tuple[str, str]:
    """Split a complete text into (reasoning, visible text)."""
    extractor = TagExtractor(config)
    pieces = extractor.process(text) + extractor.finalize()
    reasoning = "".join(content for content, inside in pieces if inside)
    visible = "".join(content for content, inside in pieces if not inside)
    return reasoning, visible


class ThinkingTagMiddleware(BaseMiddleware):
    """Converts tagged reasoning inside text deltas into reasoning deltas."""

    name = "thinking_tags"
    methods = ("completions",)

    def __init__(self, config: Optional[TagConfig] = None):
        self.config = config

    def wrap_stream(self, context: MiddlewareContext,
                    stream: AsyncIterator[Chunk]) -> AsyncIterator[Chunk]:
        config = self.config or tag_for_model(context.model)
        return self._extract(stream, TagExtractor(config))

    @staticmethod
    def _to_chunks(pieces: List[Tuple[str, bool]]) -> List[Chunk]:
        return [ReasoningDeltaChunk(text=content) if inside else TextDeltaChunk(text=content)
                for content, inside in pieces]

    async def _extract(self, stream: AsyncIterator[Chunk],
                       extractor: TagExtractor) -> AsyncGenerator[Chunk, None]:
        async for chunk in stream:
            if isinstance(chunk, TextDeltaChunk):
                for piece in self._to_chunks(extractor.process(chunk.text)):
                    yield piece
            else:
                yield chunk
        for piece in self._to_chunks(extractor.finalize()):
            yield piece
