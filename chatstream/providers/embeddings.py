"""
Embedding strategies.

Each backend gets an independent implementation of the same three-method
interface; ``create_embeddings`` picks one by provider id.
"""

import logging
from typing import Callable, Dict, List, Optional, Protocol

from .base import ProviderError
from .openai.adapter import OpenAIProvider

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 64

KNOWN_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class Embeddings(Protocol):
    """Strategy interface for turning text into vectors."""

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Embed many texts; one vector per text, in input order."""
        ...

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single search query."""
        ...

    async def get_dimensions(self) -> int:
        """Length of the vectors this strategy produces."""
        ...


class OpenAIEmbeddings:
    """Embeddings through an OpenAI (or OpenAI-compatible) endpoint."""

    def __init__(self, provider: OpenAIProvider, model: str,
                 dimensions: Optional[int] = None, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.provider = provider
        self.model = model
        self.batch_size = batch_size
        self._dimensions = dimensions

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            vectors.extend(await self.provider.embeddings(batch, self.model, self._dimensions))
        return vectors

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self.provider.embeddings([text], self.model, self._dimensions)
        return vectors[0]

    async def get_dimensions(self) -> int:
        if self._dimensions is None:
            known = KNOWN_DIMENSIONS.get(self.model)
            if known is not None:
                self._dimensions = known
            else:
                # Unknown model: measure a probe vector once
                self._dimensions = len(await self.embed_query("dimension probe"))
                logger.debug(f"Measured {self._dimensions} dimensions for {self.model}")
        return self._dimensions


EmbeddingsFactory = Callable[..., Embeddings]


def _openai_embeddings(model: str, dimensions: Optional[int] = None,
                       provider: Optional[OpenAIProvider] = None, **kwargs) -> Embeddings:
    return OpenAIEmbeddings(provider or OpenAIProvider(**kwargs), model, dimensions)


EMBEDDING_FACTORIES: Dict[str, EmbeddingsFactory] = {
    "openai": _openai_embeddings,
    "openai-compatible": _openai_embeddings,
}


def register_embeddings(provider_id: str, factory: EmbeddingsFactory) -> None:
    """Add or replace the strategy factory for a provider id."""
    EMBEDDING_FACTORIES[provider_id] = factory


def create_embeddings(provider_id: str, model: str, **kwargs) -> Embeddings:
    """
    Build the embedding strategy for a provider.

    Args:
        provider_id: Key in the factory table (e.g. "openai")
        model: Embedding model id
        **kwargs: Passed to the factory (dimensions, provider, api_key, base_url)

    Raises:
        ProviderError: If no strategy is registered for ``provider_id``
    """
    factory = EMBEDDING_FACTORIES.get(provider_id)
    if factory is None:
        raise ProviderError.unsupported(provider_id, "embeddings")
    return factory(model, **kwargs)
