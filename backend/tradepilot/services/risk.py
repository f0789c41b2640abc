"""
Risk validation for trading decisions.

Turns a parsed decision into one of three outcomes:
- hold: nothing to execute
- trade: a sized order that fits the agent's balance and position
- abort: a trade decision that cannot be sized to a positive quantity

Sizing rules:
- confidence below the minimum downgrades the decision to hold
- omitted quantity is sized as floor(balance * max_position_size / price)
- a buy costing more than the balance is downsized to floor(balance / price)
- without short selling, a sell is capped at the held quantity
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..core.errors import MarketDataError
from ..models.decision import BuyDecision, Decision, HoldDecision, SellDecision, hold_from
from ..models.market import Quote

logger = logging.getLogger(__name__)


class RiskVerdict(str, Enum):
    HOLD = "hold"
    TRADE = "trade"
    ABORT = "abort"


@dataclass
class RiskCheck:
    """Outcome of validating one decision"""

    verdict: RiskVerdict
    decision: Decision
    symbol: Optional[str] = None
    side: Optional[str] = None
    quantity: float = 0.0
    price: float = 0.0
    requested_quantity: Optional[float] = None
    reason: Optional[str] = None
    notes: list[str] = field(default_factory=list)

    @property
    def total_amount(self) -> float:
        return self.quantity * self.price


class RiskValidator:
    """
    Validates and sizes decisions against an agent's limits.

    Usage:
        validator = RiskValidator(min_confidence=70)
        check = validator.validate(decision, balance, max_position_size, quotes, held)
    """

    def __init__(self, min_confidence: int = 70, allow_short_selling: bool = False):
        self.min_confidence = min_confidence
        self.allow_short_selling = allow_short_selling

    def validate(
        self,
        decision: Decision,
        balance: float,
        max_position_size: float,
        quotes: dict[str, Quote],
        held_quantity: float = 0.0,
    ) -> RiskCheck:
        """
        Raises:
            MarketDataError: the decision names a symbol with no quote
        """
        if isinstance(decision, HoldDecision):
            return RiskCheck(RiskVerdict.HOLD, decision, symbol=decision.symbol)

        if decision.confidence < self.min_confidence:
            held = hold_from(
                decision,
                f"Confidence {decision.confidence} below minimum {self.min_confidence}",
            )
            return RiskCheck(
                RiskVerdict.HOLD,
                held,
                symbol=decision.symbol,
                reason="low_confidence",
            )

        quote = quotes.get(decision.symbol)
        if quote is None or not quote.price or quote.price <= 0:
            raise MarketDataError(
                f"No price available for {decision.symbol}",
                {"symbol": decision.symbol},
            )
        price = quote.price

        check = RiskCheck(
            RiskVerdict.TRADE,
            decision,
            symbol=decision.symbol,
            side=decision.action,
            price=price,
            requested_quantity=decision.quantity,
        )

        if decision.quantity is None:
            quantity = float(math.floor(balance * max_position_size / price))
            check.notes.append(f"Sized to {quantity:g} from max position size")
        else:
            quantity = float(decision.quantity)

        if isinstance(decision, BuyDecision):
            quantity = self._fit_balance(check, quantity, balance, price)
        elif isinstance(decision, SellDecision):
            quantity = self._fit_position(check, quantity, held_quantity)

        if quantity <= 0:
            check.verdict = RiskVerdict.ABORT
            check.quantity = 0.0
            check.reason = check.reason or "Order sized to zero quantity"
            logger.info(
                f"{decision.action.upper()} {decision.symbol} aborted: {check.reason}"
            )
            return check

        check.quantity = quantity
        return check

    def _fit_balance(self, check: RiskCheck, quantity: float, balance: float, price: float) -> float:
        if quantity * price <= balance:
            return quantity
        downsized = float(math.floor(balance / price))
        check.notes.append(f"Downsized from {quantity:g} to {downsized:g} to fit balance")
        if downsized <= 0:
            check.reason = (
                f"Insufficient balance: ${balance:.2f} cannot buy one unit at ${price:.2f}"
            )
        return downsized

    def _fit_position(self, check: RiskCheck, quantity: float, held_quantity: float) -> float:
        if self.allow_short_selling:
            return quantity
        if held_quantity <= 0:
            check.reason = f"No position in {check.symbol} to sell"
            return 0.0
        if quantity > held_quantity:
            check.notes.append(f"Capped from {quantity:g} to held {held_quantity:g}")
            return held_quantity
        return quantity
