"""
Base trader abstract class.

Defines the order execution interface used by the cycle orchestrator.
Each broker (Alpaca, simulated paper fills) implements this interface.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    """Order type"""
    MARKET = "market"
    LIMIT = "limit"


class OrderStatus(str, Enum):
    """Order lifecycle status as reported back to the orchestrator"""
    ACCEPTED = "accepted"        # Accepted by broker, nothing filled yet
    PARTIALLY_FILLED = "partially_filled"
    FILLED = "filled"


@dataclass
class OrderRequest:
    """
    Order to submit.

    ``client_order_id`` is the pending trade id; brokers use it to reject
    duplicate submissions. ``reference_price`` is the quote the decision was
    sized against.
    """
    symbol: str
    side: OrderSide
    quantity: float
    client_order_id: str
    order_type: OrderType = OrderType.MARKET
    reference_price: Optional[float] = None
    limit_price: Optional[float] = None


@dataclass
class OrderResult:
    """
    Broker acknowledgement of an accepted order.

    ``filled_quantity`` is what the broker actually executed; it is below the
    requested quantity for a partial fill and zero for an order still working.
    """
    order_id: str
    status: OrderStatus
    fill_price: float
    filled_quantity: float
    submitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    raw: dict = field(default_factory=dict)


class BaseTrader(ABC):
    """
    Abstract base class for order execution.

    Implementations raise ExecutionError when the broker rejects an order or
    cannot be reached. A returned OrderResult is settled for its
    ``filled_quantity`` only.
    """

    @property
    @abstractmethod
    def broker_name(self) -> str:
        pass

    @abstractmethod
    async def place_order(self, request: OrderRequest) -> OrderResult:
        """
        Submit an order.

        Raises:
            ExecutionError: on rejection or transport failure
        """
        pass

    async def close(self) -> None:
        """Release resources. Override if the trader holds connections."""
        return None
