"""Provider registry: adapter factories keyed by provider id, instances cached."""

import logging
from typing import Callable, Dict, List, Optional

from .anthropic.adapter import AnthropicProvider
from .base import ProviderAdapter, ProviderError
from .openai.adapter import OpenAIProvider

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[], ProviderAdapter]


def default_factories() -> Dict[str, AdapterFactory]:
    return {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
    }


class ProviderRegistry:
    """
    Creates adapters on first use and hands out the same instance afterwards.

    ``register`` installs a factory (replacing any cached instance for the
    id); ``register_instance`` installs a ready-made adapter.
    """

    def __init__(self, factories: Optional[Dict[str, AdapterFactory]] = None):
        self._factories: Dict[str, AdapterFactory] = (
            dict(factories) if factories is not None else default_factories()
        )
        self._instances: Dict[str, ProviderAdapter] = {}

    @classmethod
    def from_settings(cls, settings) -> "ProviderRegistry":
        """Registry wired with the credentials held by RuntimeSettings."""
        registry = cls({
            "openai": lambda: OpenAIProvider(api_key=settings.openai_api_key),
            "anthropic": lambda: AnthropicProvider(api_key=settings.anthropic_api_key),
        })
        if settings.openai_base_url:
            registry.register(
                "openai-compatible",
                lambda: OpenAIProvider(
                    api_key=settings.openai_api_key,
                    base_url=settings.openai_base_url,
                    provider_id="openai-compatible",
                ),
            )
        return registry

    def register(self, provider_id: str, factory: AdapterFactory) -> None:
        self._factories[provider_id] = factory
        self._instances.pop(provider_id, None)

    def register_instance(self, provider_id: str, adapter: ProviderAdapter) -> None:
        self._factories[provider_id] = lambda: adapter
        self._instances[provider_id] = adapter

    def get(self, provider_id: str) -> ProviderAdapter:
        """
        Adapter for ``provider_id``.

        Raises:
            ProviderError: If no factory is registered for the id
        """
        adapter = self._instances.get(provider_id)
        if adapter is not None:
            return adapter
        factory = self._factories.get(provider_id)
        if factory is None:
            raise ProviderError(f"Unknown provider: {provider_id}", provider_id)
        adapter = factory()
        self._instances[provider_id] = adapter
        logger.debug(f"Created adapter for provider {provider_id}: {type(adapter).__name__}")
        return adapter

    def provider_ids(self) -> List[str]:
        return sorted(self._factories)

    def available(self) -> List[str]:
        """Provider ids whose adapters report credentials."""
        return [pid for pid in self.provider_ids() if self.get(pid).is_available()]

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._factories

    def clear(self) -> None:
        """Drop cached instances; factories stay registered."""
        self._instances.clear()
