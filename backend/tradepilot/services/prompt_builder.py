"""
Prompt Builder for AI trading decisions.

System prompt: the fixed strategy template.

User prompt sections:
1. Agent status (balance, risk settings, counters)
2. Current positions
3. Recent trades
4. Market data
5. News
6. Response format and execution rules
"""

import json
from datetime import UTC, datetime
from typing import Any, Optional, Sequence

from ..models.market import Article, Quote
from .strategy_templates import get_strategy_prompt

RESPONSE_FORMAT = """{
  "action": "buy" | "sell" | "hold",
  "symbol": "AAPL" (or null for hold),
  "quantity": 10 (or null to size from the max position limit),
  "reasoning": "Clear explanation of your decision",
  "confidence": 85 (integer 0-100)
}"""


class PromptBuilder:
    """
    Builds prompts for one agent's trading decision.

    Usage:
        builder = PromptBuilder(agent, min_confidence=70)
        system = builder.build_system_prompt()
        user = builder.build_user_prompt(quotes, news, positions, recent_trades)
    """

    def __init__(self, agent: Any, min_confidence: int = 70):
        self.agent = agent
        self.min_confidence = min_confidence

    def build_system_prompt(self) -> str:
        return get_strategy_prompt(self.agent.strategy)

    def build_user_prompt(
        self,
        market_data: dict[str, Quote],
        news: Sequence[Article],
        positions: Optional[Sequence[Any]] = None,
        recent_trades: Optional[Sequence[Any]] = None,
    ) -> str:
        sections = [
            f"Current time: {datetime.now(UTC).strftime('%Y-%m-%d %H:%M:%S UTC')}",
            self._format_agent_status(),
            self._format_positions(positions or []),
            self._format_recent_trades(recent_trades or []),
            self._format_market_data(market_data),
            self._format_news(news),
            self._format_instructions(),
        ]
        return "\n\n".join(sections)

    def _format_agent_status(self) -> str:
        a = self.agent
        return (
            "AGENT STATUS:\n"
            f"- Name: {a.name}\n"
            f"- Strategy: {a.strategy}\n"
            f"- Current Balance: ${a.balance:.2f}\n"
            f"- Risk Tolerance: {a.risk_tolerance}/10\n"
            f"- Max Position Size: {a.max_position_size * 100:.0f}%\n"
            f"- Total Trades: {a.total_trades}\n"
            f"- Winning Trades: {a.winning_trades}\n"
            f"- Total Profit: ${a.total_profit:.2f}"
        )

    def _format_positions(self, positions: Sequence[Any]) -> str:
        if not positions:
            return "CURRENT POSITIONS:\n- No open positions"
        lines = [
            f"- {p.symbol}: {p.quantity:g} units @ ${p.average_price:.2f}"
            for p in positions
        ]
        return "CURRENT POSITIONS:\n" + "\n".join(lines)

    def _format_recent_trades(self, trades: Sequence[Any]) -> str:
        if not trades:
            return "RECENT TRADES:\n- No recent trades"
        lines = [
            f"- {t.side.upper()} {t.symbol} {t.quantity:g} @ ${t.price:.2f} "
            f"- {t.status} - {t.reasoning or 'No reasoning'}"
            for t in trades
        ]
        return "RECENT TRADES:\n" + "\n".join(lines)

    def _format_market_data(self, market_data: dict[str, Quote]) -> str:
        payload = {
            symbol: quote.model_dump(
                mode="json",
                include={
                    "price", "bid", "ask", "volume", "change", "change_percent",
                    "high", "low", "open", "close", "synthetic",
                },
            )
            for symbol, quote in market_data.items()
        }
        return "MARKET DATA:\n" + json.dumps(payload, indent=2)

    def _format_news(self, news: Sequence[Article]) -> str:
        if not news:
            return "NEWS & SENTIMENT:\n- No recent news"
        lines = []
        for article in news:
            line = f"- [{article.source or 'unknown'}] {article.title}"
            if article.summary:
                line += f": {article.summary}"
            lines.append(line)
        return "NEWS & SENTIMENT:\n" + "\n".join(lines)

    def _format_instructions(self) -> str:
        return (
            "Based on your strategy and the above information, make a trading decision. "
            "Respond in JSON format:\n"
            f"{RESPONSE_FORMAT}\n\n"
            "IMPORTANT:\n"
            f"- Only trade if confidence >= {self.min_confidence}\n"
            "- Only trade symbols listed under MARKET DATA\n"
            "- Respect the max position size limit\n"
            "- Never exceed available balance\n"
            "- Consider transaction fees\n"
            "- Always provide clear reasoning"
        )
