"""Agent position repository

Each agent keeps its own ledger of holdings, independent of the broker
account it trades through. Positions are updated only inside trade
settlement.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AgentPositionDB

# Quantities below this are treated as flat
_EPSILON = 1e-9


@dataclass
class FillEffect:
    """Result of applying one fill to a position"""

    quantity: float
    average_price: float
    realized_pnl: Optional[float] = None


def compute_fill(
    held_quantity: float,
    average_price: float,
    side: str,
    quantity: float,
    price: float,
) -> FillEffect:
    """
    Apply a fill to a (possibly short) position using average-cost accounting.

    The part of the fill that reduces the existing position realizes P&L
    against the average price. Any remainder opens or extends a position at
    the fill price. ``realized_pnl`` is None when nothing was closed.
    """
    signed = quantity if side == "buy" else -quantity
    realized: Optional[float] = None

    # Same direction (or flat): extend and re-average
    if abs(held_quantity) < _EPSILON or (held_quantity > 0) == (signed > 0):
        new_quantity = held_quantity + signed
        cost = abs(held_quantity) * average_price + abs(signed) * price
        new_average = cost / abs(new_quantity) if abs(new_quantity) > _EPSILON else 0.0
        return FillEffect(new_quantity, new_average, None)

    closing = min(abs(held_quantity), abs(signed))
    if held_quantity > 0:
        realized = (price - average_price) * closing
    else:
        realized = (average_price - price) * closing

    new_quantity = held_quantity + signed
    if abs(new_quantity) < _EPSILON:
        return FillEffect(0.0, 0.0, realized)
    if (new_quantity > 0) == (held_quantity > 0):
        # Partially reduced, average unchanged
        return FillEffect(new_quantity, average_price, realized)
    # Flipped through flat; remainder opened at fill price
    return FillEffect(new_quantity, price, realized)


class PositionRepository:
    """Repository for per-agent positions"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, agent_id: uuid.UUID, symbol: str) -> Optional[AgentPositionDB]:
        result = await self.session.execute(
            select(AgentPositionDB)
            .where(
                AgentPositionDB.agent_id == agent_id,
                AgentPositionDB.symbol == symbol,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_quantity(self, agent_id: uuid.UUID, symbol: str) -> float:
        position = await self.get(agent_id, symbol)
        return position.quantity if position else 0.0

    async def get_by_agent(self, agent_id: uuid.UUID) -> list[AgentPositionDB]:
        """Non-flat positions for an agent"""
        result = await self.session.execute(
            select(AgentPositionDB)
            .where(AgentPositionDB.agent_id == agent_id)
            .order_by(AgentPositionDB.symbol)
        )
        return [p for p in result.scalars().all() if abs(p.quantity) > _EPSILON]

    async def apply_fill(
        self,
        agent_id: uuid.UUID,
        symbol: str,
        side: str,
        quantity: float,
        price: float,
    ) -> Optional[float]:
        """
        Update the position for a filled trade.

        Returns:
            Realized P&L of the closed portion, or None if nothing closed.
        """
        position = await self.get(agent_id, symbol)
        if position is None:
            position = AgentPositionDB(
                agent_id=agent_id,
                symbol=symbol,
                quantity=0.0,
                average_price=0.0,
            )
            self.session.add(position)

        effect = compute_fill(
            position.quantity or 0.0,
            position.average_price or 0.0,
            side,
            quantity,
            price,
        )
        position.quantity = effect.quantity
        position.average_price = effect.average_price
        position.updated_at = datetime.now(UTC)
        await self.session.flush()
        return effect.realized_pnl
