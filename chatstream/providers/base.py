"""
Base Provider Adapter Interface

This module defines the abstract base class for all LLM provider adapters.
Every adapter turns its vendor SDK's native stream into canonical chunks and
publishes the operations it supports through an explicit capability map.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from ..cancellation.controller import AbortSignal
from ..models.chunks import Chunk, ErrorChunk, TextDeltaChunk
from ..models.conversation_types import ConversationMessage, TurnRole
from ..models.requests import (
    AssistantConfig,
    CompletionRequest,
    CompletionsResult,
    ModelDescriptor,
)

# Operation names used in capability maps
COMPLETIONS = "completions"
GENERATE_IMAGE = "generate_image"
EMBEDDINGS = "embeddings"
TRANSLATE = "translate"
SUMMARIZE = "summarize"
LIST_MODELS = "list_models"
CHECK_API_KEY = "check_api_key"

CAPABILITY_NAMES = (
    COMPLETIONS,
    GENERATE_IMAGE,
    EMBEDDINGS,
    TRANSLATE,
    SUMMARIZE,
    LIST_MODELS,
    CHECK_API_KEY,
)

TRANSLATE_PROMPT = (
    "You are a translation engine. Translate the user's text into {language}. "
    "Reply with the translation only."
)
SUMMARIZE_PROMPT = (
    "Summarize the following conversation as a short title of at most ten words. "
    "Reply with the title only."
)


async def deliver(callback: Callable[[Any], Any], value: Any) -> None:
    """Invoke a sync or async callback and wait for it when it returns an awaitable."""
    result = callback(value)
    if inspect.isawaitable(result):
        await result


async def close_native_stream(stream: Any) -> None:
    """Release a vendor stream (``close()`` on SDK streams, ``aclose()`` on async generators)."""
    for name in ("close", "aclose"):
        method = getattr(stream, name, None)
        if callable(method):
            result = method()
            if inspect.isawaitable(result):
                await result
            return


class ProviderAdapter(ABC):
    """
    Abstract base class for LLM provider adapters.

    The adapter is responsible for:
    - Translating conversation messages and assistant settings to the vendor request
    - Calling the vendor SDK
    - Translating the native stream into canonical chunks, in order
    - Mapping vendor failures to ProviderError

    Adapters check ``signal.aborted`` between native events and stop reading
    once it is set. They never decide how a failure is shown to the user;
    the orchestrator does.
    """

    provider_id: str = ""

    @abstractmethod
    def stream_completions(
        self,
        request: CompletionRequest,
        signal: Optional[AbortSignal] = None,
    ) -> AsyncIterator[Chunk]:
        """
        Stream a completion as canonical chunks.

        Implementations are async generators. Usage is reported as
        ``UsageUpdateChunk`` values whose counts never decrease within one
        stream; the stream ends with a ``BlockCompleteChunk``.

        Args:
            request: Messages, assistant settings and tools
            signal: Abort signal checked between native events

        Yields:
            Chunk variants in the order the backend produced them

        Raises:
            ProviderError: When the upstream call is rejected, the connection
                drops or the response is malformed
        """

    def open_completions(
        self,
        request: CompletionRequest,
        signal: Optional[AbortSignal] = None,
    ) -> CompletionsResult:
        """Wrap the chunk stream so middleware stages can decorate it before it is drained."""
        return CompletionsResult(
            stream=self.stream_completions(request, signal),
            metadata={"provider": self.get_provider_name(), "model": request.model.id},
        )

    async def completions(
        self,
        request: CompletionRequest,
        signal: Optional[AbortSignal] = None,
    ) -> str:
        """
        Drain the chunk stream into ``request.on_chunk``.

        Returns:
            The concatenated assistant text
        """
        parts: List[str] = []
        stream = self.stream_completions(request, signal)
        try:
            async for chunk in stream:
                if isinstance(chunk, TextDeltaChunk):
                    parts.append(chunk.text)
                await deliver(request.on_chunk, chunk)
        finally:
            await stream.aclose()
        return "".join(parts)

    async def translate(self, text: str, target_language: str, model: str,
                        signal: Optional[AbortSignal] = None) -> str:
        """Translate ``text`` with a one-shot completion."""
        request = self._one_shot_request(
            model,
            TRANSLATE_PROMPT.format(language=target_language),
            [ConversationMessage(role=TurnRole.USER, content=text)],
        )
        return (await self._collect(request, signal)).strip()

    async def summarize(self, messages: List[ConversationMessage], model: str,
                        signal: Optional[AbortSignal] = None) -> str:
        """Produce a short title for a conversation."""
        transcript = "\n".join(
            f"{m.role.value}: {m.get_text()}" for m in messages if m.role != TurnRole.SYSTEM
        )
        request = self._one_shot_request(
            model,
            SUMMARIZE_PROMPT,
            [ConversationMessage(role=TurnRole.USER, content=transcript)],
        )
        return (await self._collect(request, signal)).strip()

    async def _collect(self, request: CompletionRequest, signal: Optional[AbortSignal]) -> str:
        errors: List[ErrorChunk] = []

        def on_chunk(chunk: Chunk) -> None:
            if isinstance(chunk, ErrorChunk):
                errors.append(chunk)

        request.on_chunk = on_chunk
        text = await self.completions(request, signal)
        if errors:
            raise ProviderError(errors[0].message or "completion failed", self.get_provider_name())
        return text

    def _one_shot_request(self, model: str, prompt: str,
                          messages: List[ConversationMessage]) -> CompletionRequest:
        return CompletionRequest(
            messages=messages,
            assistant=AssistantConfig(
                name="system",
                prompt=prompt,
                model=ModelDescriptor(id=model, provider_id=self.get_provider_name()),
            ),
            on_chunk=lambda chunk: None,
        )

    def capabilities(self) -> Dict[str, Callable[..., Any]]:
        """
        Explicit map of supported operations.

        Subclasses extend this map with the vendor-specific operations they
        implement. Operations absent from the map are unsupported.
        """
        return {
            COMPLETIONS: self.completions,
            TRANSLATE: self.translate,
            SUMMARIZE: self.summarize,
        }

    def supports(self, operation: str) -> bool:
        return operation in self.capabilities()

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if the provider is configured.

        Returns:
            bool: True if credentials are present
        """

    def get_provider_name(self) -> str:
        """
        Get the name of this provider.

        Returns ``provider_id`` when set, otherwise the class name without
        the 'Provider' suffix.
        """
        if self.provider_id:
            return self.provider_id
        class_name = self.__class__.__name__
        if class_name.endswith("Provider"):
            return class_name[:-8].lower()
        return class_name.lower()


ApiKeyCheck = Tuple[bool, Optional[str]]


class ProviderError(Exception):
    """
    Base exception for provider-related errors.

    This should be raised for:
    - Upstream rejections (authentication, validation, rate limiting)
    - Dropped connections and transport timeouts
    - Malformed responses
    - Operations the adapter does not support

    Attributes:
        message: Error message
        provider: Provider name
        status_code: HTTP status code if applicable
        retry_after: Seconds to wait before retry if applicable
        is_retryable: Whether this error should be retried
        original_error: The original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after
        self.is_retryable = False  # set by ErrorMapper
        self.original_error: Optional[BaseException] = None

    @classmethod
    def unsupported(cls, provider: str, operation: str) -> "ProviderError":
        error = cls("operation not supported", provider)
        error.operation = operation
        return error
