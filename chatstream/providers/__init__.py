"""Provider adapters for the completion runtime."""

from .base import CAPABILITY_NAMES, ProviderAdapter, ProviderError
from .embeddings import Embeddings, OpenAIEmbeddings, create_embeddings
from .errors import ErrorMapper
from .registry import ProviderRegistry
from .anthropic import AnthropicProvider
from .openai import OpenAIProvider

__all__ = [
    "CAPABILITY_NAMES",
    "ProviderAdapter",
    "ProviderError",
    "ErrorMapper",
    "ProviderRegistry",
    "Embeddings",
    "OpenAIEmbeddings",
    "create_embeddings",
    "OpenAIProvider",
    "AnthropicProvider",
]
