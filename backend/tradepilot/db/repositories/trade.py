"""Trade repository

Trades are created ``pending`` and leave that state exactly once. All
transitions are guarded by ``WHERE status = 'pending'`` so terminal rows are
never rewritten.
"""

import uuid
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import TradeDB


class TradeRepository:
    """Repository for Trade rows"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        agent_id: uuid.UUID,
        user_id: uuid.UUID,
        symbol: str,
        side: str,
        quantity: float,
        price: float,
        reasoning: Optional[str] = None,
        status: str = "pending",
        error_message: Optional[str] = None,
    ) -> TradeDB:
        trade = TradeDB(
            agent_id=agent_id,
            user_id=user_id,
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            total_amount=quantity * price,
            status=status,
            reasoning=reasoning,
            error_message=error_message,
        )
        self.session.add(trade)
        await self.session.flush()
        await self.session.refresh(trade)
        return trade

    async def get_by_id(self, trade_id: uuid.UUID) -> Optional[TradeDB]:
        result = await self.session.execute(
            select(TradeDB)
            .where(TradeDB.id == trade_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_agent(
        self,
        agent_id: uuid.UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TradeDB]:
        """Trades for an agent, newest first"""
        result = await self.session.execute(
            select(TradeDB)
            .where(TradeDB.agent_id == agent_id)
            .order_by(TradeDB.created_at.desc(), TradeDB.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def mark_completed(
        self,
        trade_id: uuid.UUID,
        price: float,
        broker_order_id: Optional[str],
        realized_pnl: Optional[float] = None,
        quantity: Optional[float] = None,
    ) -> bool:
        """
        Transition pending -> completed at the fill price.

        ``quantity`` is the filled size when the broker filled less than was
        requested; it defaults to the requested size.

        Returns:
            False if the trade already left pending (settled earlier).
        """
        trade = await self.get_by_id(trade_id)
        if trade is None or trade.status != "pending":
            return False
        filled = trade.quantity if quantity is None else quantity
        result = await self.session.execute(
            update(TradeDB)
            .where(TradeDB.id == trade_id, TradeDB.status == "pending")
            .values(
                status="completed",
                quantity=filled,
                price=price,
                total_amount=filled * price,
                broker_order_id=broker_order_id,
                realized_pnl=realized_pnl,
                executed_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def mark_failed(self, trade_id: uuid.UUID, error_message: str) -> bool:
        """Transition pending -> failed. No-op for terminal trades."""
        result = await self.session.execute(
            update(TradeDB)
            .where(TradeDB.id == trade_id, TradeDB.status == "pending")
            .values(status="failed", error_message=error_message[:1000])
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
