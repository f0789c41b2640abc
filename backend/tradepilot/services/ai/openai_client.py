"""
OpenAI Client Adapter.

Implements the BaseAIClient interface for OpenAI chat models.
"""

import time

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

# Lazy import to avoid loading the SDK when another provider is configured
openai = None


def _get_openai():
    global openai
    if openai is None:
        try:
            import openai as _openai

            openai = _openai
        except ImportError:
            raise AIClientError(
                "openai package not installed. Install with: pip install openai",
                AIProvider.OPENAI,
            )
    return openai


class OpenAIClient(BaseAIClient):
    """
    OpenAI GPT client.

    Usage:
        config = AIClientConfig(api_key="...", model="gpt-4o")
        client = OpenAIClient(config)
        response = await client.generate(system_prompt, user_prompt)
    """

    def __init__(self, config: AIClientConfig):
        super().__init__(config)

        _openai = _get_openai()
        client_kwargs = {"api_key": config.api_key, "timeout": config.timeout}
        if config.base_url:
            client_kwargs["base_url"] = config.base_url
        self._client = _openai.AsyncOpenAI(**client_kwargs)

    @property
    def provider(self) -> AIProvider:
        return AIProvider.OPENAI

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        json_mode: bool = True,
    ) -> AIResponse:
        _openai = _get_openai()
        start_time = time.time()

        request_kwargs = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }
        if json_mode:
            request_kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(**request_kwargs)
        except _openai.BadRequestError as e:
            raise AIInvalidRequestError(f"Bad request: {e}", self.provider)
        except _openai.AuthenticationError as e:
            raise AIAuthenticationError(f"Authentication failed: {e}", self.provider)
        except _openai.RateLimitError as e:
            raise AIRateLimitError(f"Rate limit exceeded: {e}", self.provider)
        except _openai.APIConnectionError as e:
            raise AIConnectionError(f"Connection failed: {e}", self.provider)
        except _openai.APIStatusError as e:
            raise AIClientError(f"API error: {e}", self.provider)

        content = response.choices[0].message.content or ""
        input_tokens = response.usage.prompt_tokens if response.usage else 0
        output_tokens = response.usage.completion_tokens if response.usage else 0

        return AIResponse(
            content=content,
            model=response.model,
            provider=self.provider,
            tokens_used=input_tokens + output_tokens,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            stop_reason=response.choices[0].finish_reason or "",
            latency_ms=int((time.time() - start_time) * 1000),
            raw_response=response,
        )

    async def close(self) -> None:
        await self._client.close()
