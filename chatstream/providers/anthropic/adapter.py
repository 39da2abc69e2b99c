import os
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

from anthropic import AsyncAnthropic

from ..base import (
    CHECK_API_KEY,
    LIST_MODELS,
    ApiKeyCheck,
    ProviderAdapter,
    ProviderError,
    close_native_stream,
)
from ..errors import ErrorMapper
from ...cancellation.controller import AbortSignal
from ...models.chunks import Chunk, TextDeltaChunk, UsageUpdateChunk
from ...models.requests import CompletionRequest, ModelDescriptor
from ...models.usage import TokenUsage
from ...observability.logging import ProviderLogger
from .payloads import build_messages_payload
from .streaming import translate_message_stream


class AnthropicProvider(ProviderAdapter):
    """Anthropic Messages API provider. No image generation or embeddings."""

    provider_id = "anthropic"

    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncAnthropic] = None):
        self._client = client
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.logger = ProviderLogger(self.provider_id)

    @property
    def client(self) -> AsyncAnthropic:
        """Lazy initialization of the Anthropic client."""
        if self._client is None:
            if not self._api_key:
                raise ProviderError("API key not configured", self.provider_id, status_code=401)
            self._client = AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def stream_completions(
        self,
        request: CompletionRequest,
        signal: Optional[AbortSignal] = None,
    ) -> AsyncGenerator[Chunk, None]:
        """Stream a Messages API response as canonical chunks."""
        payload = build_messages_payload(request)
        model = request.model.id

        with self.logger.track_request("completions", model, request_id=request.request_id) as call:
            stream = None
            usage = TokenUsage()
            chunks = 0
            chars = 0
            try:
                stream = await self.client.messages.create(**payload)
                async for chunk in translate_message_stream(stream, self.provider_id, signal):
                    chunks += 1
                    if isinstance(chunk, TextDeltaChunk):
                        chars += len(chunk.text)
                    elif isinstance(chunk, UsageUpdateChunk):
                        usage = chunk.usage
                    yield chunk
            except ProviderError:
                raise
            except Exception as e:
                raise ErrorMapper.map_error(e, self.provider_id)
            finally:
                if stream is not None:
                    await close_native_stream(stream)

            if not usage.is_empty():
                self.logger.log_usage(call, usage)
            self.logger.log_stream_summary(call, chunks, chars)

    async def list_models(self) -> List[ModelDescriptor]:
        """Models visible to the configured key."""
        with self.logger.track_request("list_models", "*"):
            try:
                page = await self.client.models.list()
            except Exception as e:
                raise ErrorMapper.map_error(e, self.provider_id)
        return [
            ModelDescriptor(id=item.id, provider_id=self.provider_id, name=getattr(item, "display_name", None))
            for item in page.data
        ]

    async def check_api_key(self, model: str) -> ApiKeyCheck:
        """
        Validate the key with a one-token message.

        Returns:
            (True, None) when the call succeeds, (False, message) otherwise
        """
        try:
            await self.client.messages.create(
                model=model,
                max_tokens=1,
                messages=[{"role": "user", "content": "hi"}],
            )
        except Exception as e:
            error = ErrorMapper.map_error(e, self.provider_id)
            self.logger.warning("API key check failed", model=model, status_code=error.status_code)
            return False, str(error)
        return True, None

    def capabilities(self) -> Dict[str, Callable[..., Any]]:
        caps = super().capabilities()
        caps.update({
            LIST_MODELS: self.list_models,
            CHECK_API_KEY: self.check_api_key,
        })
        return caps

    def is_available(self) -> bool:
        """Check if an API key is configured."""
        return bool(self._api_key) or self._client is not None
