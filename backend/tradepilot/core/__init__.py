"""Core module - configuration, error taxonomy, and dependencies"""

from .config import Settings, get_settings
from .errors import (
    AgentNotFoundError,
    DecisionParseError,
    DecisionServiceError,
    ErrorCode,
    ExecutionError,
    GatewayError,
    InsufficientBalanceError,
    MarketDataError,
    NewsError,
    NoMarketDataError,
    PersistenceError,
    StaleWriteError,
    TradePilotError,
)

__all__ = [
    "Settings",
    "get_settings",
    "AgentNotFoundError",
    "DecisionParseError",
    "DecisionServiceError",
    "ErrorCode",
    "ExecutionError",
    "GatewayError",
    "InsufficientBalanceError",
    "MarketDataError",
    "NewsError",
    "NoMarketDataError",
    "PersistenceError",
    "StaleWriteError",
    "TradePilotError",
]
