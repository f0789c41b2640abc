"""
AI Client Module.

Provides a unified interface for the LLM providers used by the decision
service:
- Anthropic (Claude)
- OpenAI

Usage:
    from tradepilot.services.ai import get_ai_client

    client = get_ai_client("anthropic:claude-sonnet-4-5-20250929", api_key="...")
    response = await client.generate(system_prompt, user_prompt)
"""

from .base import (
    AIAuthenticationError,
    AIClientConfig,
    AIClientError,
    AIConnectionError,
    AIInvalidRequestError,
    AIProvider,
    AIRateLimitError,
    AIResponse,
    BaseAIClient,
)
from .factory import AIClientFactory, get_ai_client, parse_model_id

__all__ = [
    # Base classes and types
    "AIProvider",
    "AIClientConfig",
    "AIClientError",
    "AIAuthenticationError",
    "AIRateLimitError",
    "AIConnectionError",
    "AIInvalidRequestError",
    "AIResponse",
    "BaseAIClient",
    # Factory
    "AIClientFactory",
    "get_ai_client",
    "parse_model_id",
]
