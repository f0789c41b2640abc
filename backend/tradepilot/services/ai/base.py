"""
AI Client Base Classes.

Defines the abstract interface the decision service uses to talk to an LLM
provider, plus the provider-neutral response and error types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class AIProvider(str, Enum):
    """Supported AI providers"""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"


@dataclass
class AIClientConfig:
    """Configuration for an AI client instance"""

    api_key: str
    model: str
    base_url: Optional[str] = None
    max_tokens: int = 2048
    temperature: float = 0.3
    timeout: int = 60
    extra_params: dict = field(default_factory=dict)


@dataclass
class AIResponse:
    """Standardized response from AI clients"""

    content: str
    model: str
    provider: AIProvider
    tokens_used: int
    input_tokens: int
    output_tokens: int
    stop_reason: str = ""
    latency_ms: int = 0
    raw_response: Optional[Any] = None


class AIClientError(Exception):
    """Base error for AI client operations"""

    def __init__(self, message: str, provider: Optional[AIProvider] = None):
        self.message = message
        self.provider = provider
        super().__init__(message)


class AIAuthenticationError(AIClientError):
    """Authentication failed with provider"""

    pass


class AIRateLimitError(AIClientError):
    """Rate limit exceeded"""

    pass


class AIConnectionError(AIClientError):
    """Connection to provider failed"""

    pass


class AIInvalidRequestError(AIClientError):
    """Invalid request to provider"""

    pass


class BaseAIClient(ABC):
    """
    Abstract base class for AI clients.

    Usage:
        client = AnthropicClient(AIClientConfig(api_key="...", model="..."))
        response = await client.generate(system_prompt, user_prompt)
    """

    def __init__(self, config: AIClientConfig):
        self.config = config
        self._validate_config()

    def _validate_config(self) -> None:
        if not self.config.api_key:
            raise AIClientError(
                f"API key is required for {self.provider.value}", self.provider
            )

    @property
    @abstractmethod
    def provider(self) -> AIProvider:
        """Return the provider type for this client"""
        pass

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        json_mode: bool = True,
    ) -> AIResponse:
        """
        Generate a response from the AI model.

        Args:
            system_prompt: System instructions for the model
            user_prompt: User message/query
            json_mode: If True, guide/force model to output JSON

        Returns:
            AIResponse with content and metadata

        Raises:
            AIClientError: On any error from the AI provider
        """
        pass

    async def close(self) -> None:
        """Release the underlying HTTP client. Override if needed."""
        return None
