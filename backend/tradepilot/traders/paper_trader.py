"""
Paper trader - simulated fills.

Fills every order immediately at the reference price (the quote the
decision was made against). No broker or funds are involved; the agent's
virtual balance is the only ledger. Resubmission is guarded by the pending
trade's status in the store, so the trader keeps no order state.
"""

import logging
import uuid

from ..core.errors import ExecutionError
from .base import BaseTrader, OrderRequest, OrderResult, OrderStatus

logger = logging.getLogger(__name__)


class PaperTrader(BaseTrader):
    """Simulated broker"""

    @property
    def broker_name(self) -> str:
        return "paper"

    async def place_order(self, request: OrderRequest) -> OrderResult:
        if request.quantity <= 0:
            raise ExecutionError(
                f"Invalid quantity {request.quantity} for {request.symbol}",
                broker_code="invalid_quantity",
            )
        if not request.reference_price or request.reference_price <= 0:
            raise ExecutionError(
                f"No reference price for simulated fill of {request.symbol}",
                broker_code="no_price",
            )

        result = OrderResult(
            order_id=f"paper-{uuid.uuid4().hex[:12]}",
            status=OrderStatus.FILLED,
            fill_price=request.reference_price,
            filled_quantity=request.quantity,
        )
        logger.info(
            f"[paper] {request.side.value.upper()} {request.quantity:g} "
            f"{request.symbol} @ {result.fill_price:.2f}"
        )
        return result
