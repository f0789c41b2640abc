"""Data models for agents, decisions and market data"""

from .agent import (
    ActionKind,
    AgentActionResponse,
    AgentCreate,
    AgentResponse,
    AgentStatus,
    MarketType,
    NotificationResponse,
    StrategyType,
    TradeResponse,
    TradingMode,
)
from .decision import (
    BuyDecision,
    Decision,
    HoldDecision,
    SellDecision,
    decision_adapter,
    hold_from,
)
from .market import Article, Quote, snapshot_quotes

__all__ = [
    # Agent models
    "ActionKind",
    "AgentActionResponse",
    "AgentCreate",
    "AgentResponse",
    "AgentStatus",
    "MarketType",
    "NotificationResponse",
    "StrategyType",
    "TradeResponse",
    "TradingMode",
    # Decision models
    "BuyDecision",
    "Decision",
    "HoldDecision",
    "SellDecision",
    "decision_adapter",
    "hold_from",
    # Market models
    "Article",
    "Quote",
    "snapshot_quotes",
]
