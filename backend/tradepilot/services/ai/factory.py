"""
AI Client Factory.

Creates AI client instances from "provider:model_id" strings.
"""

import logging
from typing import Optional

from .base import (
    AIClientConfig,
    AIClientError,
    AIProvider,
    BaseAIClient,
)

logger = logging.getLogger(__name__)

# Client class registry
_CLIENT_CLASSES: dict[AIProvider, type[BaseAIClient]] = {}


def _ensure_clients_registered():
    """Register client classes. Called lazily to avoid import cycles."""
    if _CLIENT_CLASSES:
        return

    from .anthropic_client import AnthropicClient
    from .openai_client import OpenAIClient

    _CLIENT_CLASSES[AIProvider.ANTHROPIC] = AnthropicClient
    _CLIENT_CLASSES[AIProvider.OPENAI] = OpenAIClient


def parse_model_id(model_full_id: str) -> tuple[AIProvider, str]:
    """Split "provider:model_id" into its parts."""
    if ":" not in model_full_id:
        raise AIClientError(
            f"Invalid model ID format: {model_full_id}. Expected 'provider:model_id'"
        )
    provider_str, model_id = model_full_id.split(":", 1)
    try:
        provider = AIProvider(provider_str)
    except ValueError:
        raise AIClientError(f"Unknown provider: {provider_str}")
    if not model_id:
        raise AIClientError(f"Missing model id in: {model_full_id}")
    return provider, model_id


class AIClientFactory:
    """
    Factory for creating AI client instances.

    Usage:
        client = AIClientFactory.create("anthropic:claude-sonnet-4-5-20250929", api_key="...")
    """

    @staticmethod
    def create(
        model_full_id: str,
        api_key: Optional[str] = None,
        **kwargs,
    ) -> BaseAIClient:
        """
        Create an AI client by model full ID.

        Args:
            model_full_id: Full model ID in format "provider:model_id"
            api_key: API key; falls back to settings for the provider
            **kwargs: Additional config options (temperature, max_tokens, timeout, base_url)

        Raises:
            AIClientError: If the provider is unknown or no key is available
        """
        provider, model_id = parse_model_id(model_full_id)
        resolved_api_key = api_key or AIClientFactory._get_api_key(provider)

        config = AIClientConfig(
            api_key=resolved_api_key,
            model=model_id,
            base_url=kwargs.get("base_url"),
            max_tokens=kwargs.get("max_tokens", 2048),
            temperature=kwargs.get("temperature", 0.3),
            timeout=kwargs.get("timeout", 60),
        )
        return AIClientFactory.create_with_config(provider, config)

    @staticmethod
    def create_with_config(
        provider: AIProvider,
        config: AIClientConfig,
    ) -> BaseAIClient:
        _ensure_clients_registered()

        if provider not in _CLIENT_CLASSES:
            raise AIClientError(
                f"No client implementation for provider: {provider.value}. "
                f"Available providers: {[p.value for p in _CLIENT_CLASSES.keys()]}"
            )
        return _CLIENT_CLASSES[provider](config)

    @staticmethod
    def _get_api_key(provider: AIProvider) -> str:
        from ...core.config import get_settings

        settings = get_settings()
        key = {
            AIProvider.ANTHROPIC: settings.anthropic_api_key,
            AIProvider.OPENAI: settings.openai_api_key,
        }.get(provider, "")
        if not key:
            raise AIClientError(
                f"No API key configured for {provider.value}. "
                f"Set {provider.value.upper()}_API_KEY in the environment.",
                provider,
            )
        return key


def get_ai_client(
    model_full_id: str,
    api_key: Optional[str] = None,
    **kwargs,
) -> BaseAIClient:
    """Convenience wrapper around AIClientFactory.create"""
    return AIClientFactory.create(model_full_id, api_key, **kwargs)
