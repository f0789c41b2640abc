"""Order execution adapters"""

import logging
from typing import Any, Optional

from ..core.config import Settings, get_settings
from ..core.errors import ExecutionError
from .alpaca_trader import AlpacaTrader
from .base import (
    BaseTrader,
    OrderRequest,
    OrderResult,
    OrderSide,
    OrderStatus,
    OrderType,
)
from .paper_trader import PaperTrader

logger = logging.getLogger(__name__)


def create_trader(agent: Any, settings: Optional[Settings] = None) -> BaseTrader:
    """
    Create the trader for an agent's trading mode.

    - live: Alpaca live endpoint, credentials required
    - paper: Alpaca paper endpoint when credentials are configured,
      otherwise simulated fills
    """
    settings = settings or get_settings()
    mode = getattr(agent, "trading_mode", "paper")

    if mode == "live":
        if not settings.has_broker_credentials:
            raise ExecutionError(
                "Live trading requires ALPACA_API_KEY and ALPACA_API_SECRET",
                broker_code="missing_credentials",
            )
        return AlpacaTrader(
            api_key=settings.alpaca_api_key,
            api_secret=settings.alpaca_api_secret,
            base_url=settings.alpaca_live_url,
            timeout=settings.broker_timeout,
        )

    if settings.has_broker_credentials:
        return AlpacaTrader(
            api_key=settings.alpaca_api_key,
            api_secret=settings.alpaca_api_secret,
            base_url=settings.alpaca_paper_url,
            timeout=settings.broker_timeout,
        )

    return PaperTrader()


__all__ = [
    "AlpacaTrader",
    "BaseTrader",
    "create_trader",
    "OrderRequest",
    "OrderResult",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "PaperTrader",
]
