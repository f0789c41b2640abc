"""
Anthropic Client Adapter.

Implements the BaseAIClient interface for Claude models via the Messages API.
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
anthropic = None


def _get_anthropic():
    global anthropic
    if anthropic is None:
        try:
            import anthropic as _anthropic

            anthropic = _anthropic
        except ImportError:
            raise AIClientError(
                "anthropic package not installed. Install with: pip install anthropic",
                AIProvider.ANTHROPIC,
            )
    return anthropic


JSON_INSTRUCTION = (
    "\n\nRespond with a single JSON object only. No prose before or after it."
)


class AnthropicClient(BaseAIClient):
    """
    Claude client.

    The Messages API has no JSON mode, so ``json_mode`` appends an explicit
    instruction to the system prompt instead.
    """

    def __init__(self, config: AIClientConfig):
        super().__init__(config)

        _anthropic = _get_anthropic()
        client_kwargs = {"api_key": config.api_key, "timeout": float(config.timeout)}
        if config.base_url:
            client_kwargs["base_url"] = config.base_url
        self._client = _anthropic.AsyncAnthropic(**client_kwargs)

    @property
    def provider(self) -> AIProvider:
        return AIProvider.ANTHROPIC

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        json_mode: bool = True,
    ) -> AIResponse:
        _anthropic = _get_anthropic()
        start_time = time.time()

        system = system_prompt + JSON_INSTRUCTION if json_mode else system_prompt

        try:
            response = await self._client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=system,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except _anthropic.BadRequestError as e:
            raise AIInvalidRequestError(f"Bad request: {e}", self.provider)
        except _anthropic.AuthenticationError as e:
            raise AIAuthenticationError(f"Authentication failed: {e}", self.provider)
        except _anthropic.RateLimitError as e:
            raise AIRateLimitError(f"Rate limit exceeded: {e}", self.provider)
        except _anthropic.APIConnectionError as e:
            raise AIConnectionError(f"Connection failed: {e}", self.provider)
        except _anthropic.APIStatusError as e:
            raise AIClientError(f"API error: {e}", self.provider)

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        input_tokens = response.usage.input_tokens if response.usage else 0
        output_tokens = response.usage.output_tokens if response.usage else 0

        return AIResponse(
            content=content,
            model=response.model,
            provider=self.provider,
            tokens_used=input_tokens + output_tokens,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            stop_reason=response.stop_reason or "",
            latency_ms=int((time.time() - start_time) * 1000),
            raw_response=response,
        )

    async def close(self) -> None:
        await self._client.close()
