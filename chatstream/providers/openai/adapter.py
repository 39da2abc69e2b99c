import os
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

from openai import AsyncOpenAI

from ..base import (
    CHECK_API_KEY,
    EMBEDDINGS,
    GENERATE_IMAGE,
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
from .payloads import build_chat_payload
from .streaming import translate_chat_stream


class OpenAIProvider(ProviderAdapter):
    """
    OpenAI Chat Completions provider.

    Also serves OpenAI-compatible endpoints (xAI, DeepSeek, Qwen, Gemini's
    compatibility endpoint) when built with ``base_url`` and a distinct
    ``provider_id``.
    """

    provider_id = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        provider_id: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        if provider_id:
            self.provider_id = provider_id
        self._client = client
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url or os.getenv("OPENAI_BASE_URL")
        if timeout is None:
            # Allow overriding default timeout via env variable (seconds)
            try:
                timeout = float(os.getenv("OPENAI_TIMEOUT", "60"))
            except ValueError:
                timeout = 60.0
        self._timeout = timeout
        self.logger = ProviderLogger(self.provider_id)

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise ProviderError("API key not configured", self.provider_id, status_code=401)
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def stream_completions(
        self,
        request: CompletionRequest,
        signal: Optional[AbortSignal] = None,
    ) -> AsyncGenerator[Chunk, None]:
        """Stream a chat completion as canonical chunks."""
        payload = build_chat_payload(request)
        model = request.model.id

        with self.logger.track_request("completions", model, request_id=request.request_id) as call:
            stream = None
            usage = TokenUsage()
            chunks = 0
            chars = 0
            try:
                stream = await self.client.chat.completions.create(**payload)
                async for chunk in translate_chat_stream(stream, self.provider_id, signal):
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

    async def generate_image(self, prompt: str, model: str, size: str = "1024x1024", n: int = 1) -> List[str]:
        """
        Generate images.

        Returns:
            One URL (or base64 payload when the backend returns no URL) per image
        """
        with self.logger.track_request("generate_image", model):
            try:
                response = await self.client.images.generate(model=model, prompt=prompt, size=size, n=n)
            except Exception as e:
                raise ErrorMapper.map_error(e, self.provider_id)
        images = []
        for item in response.data or []:
            value = getattr(item, "url", None) or getattr(item, "b64_json", None)
            if value:
                images.append(value)
        if not images:
            raise ErrorMapper.malformed_response(self.provider_id, "no image data returned")
        return images

    async def embeddings(self, texts: List[str], model: str, dimensions: Optional[int] = None) -> List[List[float]]:
        """Embed each text; vectors come back in input order."""
        kwargs: Dict[str, Any] = {"model": model, "input": texts}
        if dimensions is not None:
            kwargs["dimensions"] = dimensions
        with self.logger.track_request("embeddings", model):
            try:
                response = await self.client.embeddings.create(**kwargs)
            except Exception as e:
                raise ErrorMapper.map_error(e, self.provider_id)
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise ErrorMapper.malformed_response(
                self.provider_id, f"expected {len(texts)} embeddings, got {len(data)}"
            )
        return [list(item.embedding) for item in data]

    async def list_models(self) -> List[ModelDescriptor]:
        """Models visible to the configured key."""
        with self.logger.track_request("list_models", "*"):
            try:
                page = await self.client.models.list()
            except Exception as e:
                raise ErrorMapper.map_error(e, self.provider_id)
        return [
            ModelDescriptor(id=item.id, provider_id=self.provider_id)
            for item in page.data
        ]

    async def check_api_key(self, model: str) -> ApiKeyCheck:
        """
        Validate the key with a one-token completion.

        Returns:
            (True, None) when the call succeeds, (False, message) otherwise
        """
        try:
            await self.client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": "hi"}],
                max_tokens=1,
            )
        except Exception as e:
            error = ErrorMapper.map_error(e, self.provider_id)
            self.logger.warning("API key check failed", model=model, status_code=error.status_code)
            return False, str(error)
        return True, None

    def capabilities(self) -> Dict[str, Callable[..., Any]]:
        caps = super().capabilities()
        caps.update({
            GENERATE_IMAGE: self.generate_image,
            EMBEDDINGS: self.embeddings,
            LIST_MODELS: self.list_models,
            CHECK_API_KEY: self.check_api_key,
        })
        return caps

    def is_available(self) -> bool:
        """Check if an API key is configured."""
        return bool(self._api_key) or self._client is not None
