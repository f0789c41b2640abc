"""
Decision Service - Ask the LLM what an agent should do this tick.

Builds the strategy prompt, calls the configured AI client and parses the
reply into a validated Decision.
"""

import logging
from typing import Any, Optional, Sequence

from ..core.config import Settings, get_settings
from ..core.errors import DecisionServiceError
from ..models.decision import Decision
from ..models.market import Article, Quote
from .ai import AIClientError, BaseAIClient, get_ai_client
from .decision_parser import DecisionParser
from .prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)


class DecisionService:
    """
    LLM-backed decision source.

    The AI client is created on first use so the service can be constructed
    without credentials (tests, paused deployments).
    """

    def __init__(
        self,
        ai_client: Optional[BaseAIClient] = None,
        settings: Optional[Settings] = None,
        parser: Optional[DecisionParser] = None,
    ):
        self.settings = settings or get_settings()
        self._client = ai_client
        self.parser = parser or DecisionParser()

    def _get_client(self) -> BaseAIClient:
        if self._client is None:
            provider = self.settings.ai_model.split(":", 1)[0]
            api_key = {
                "anthropic": self.settings.anthropic_api_key,
                "openai": self.settings.openai_api_key,
            }.get(provider) or None
            try:
                self._client = get_ai_client(
                    self.settings.ai_model,
                    api_key=api_key,
                    max_tokens=self.settings.ai_max_tokens,
                    temperature=self.settings.ai_temperature,
                    timeout=self.settings.ai_timeout,
                )
            except AIClientError as e:
                raise DecisionServiceError(f"AI client unavailable: {e.message}") from e
        return self._client

    async def get_decision(
        self,
        agent: Any,
        market_data: dict[str, Quote],
        news: Sequence[Article],
        positions: Optional[Sequence[Any]] = None,
        recent_trades: Optional[Sequence[Any]] = None,
    ) -> Decision:
        """
        Request a decision for one agent.

        Raises:
            DecisionServiceError: provider call failed
            DecisionParseError: reply did not validate
        """
        builder = PromptBuilder(agent, min_confidence=self.settings.min_trade_confidence)
        system_prompt = builder.build_system_prompt()
        user_prompt = builder.build_user_prompt(market_data, news, positions, recent_trades)

        client = self._get_client()
        try:
            response = await client.generate(system_prompt, user_prompt)
        except AIClientError as e:
            raise DecisionServiceError(
                f"Decision request failed: {e.message}",
                {"provider": e.provider.value if e.provider else None},
            ) from e

        logger.debug(
            f"Agent {agent.id}: decision reply in {response.latency_ms}ms, "
            f"{response.tokens_used} tokens"
        )
        return self.parser.parse(response.content)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
