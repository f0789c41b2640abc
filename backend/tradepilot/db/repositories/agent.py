"""Agent repository for database operations

Handles CRUD and lifecycle transitions for trading agents. Every write to
balance or counters bumps ``version`` so that settlement can detect a
concurrent modification and retry.
"""

import uuid
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.errors import StaleWriteError
from ..models import AgentDB


class AgentRepository:
    """Repository for Agent CRUD operations"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        user_id: uuid.UUID,
        name: str,
        strategy: str,
        initial_balance: float,
        market_type: str = "stocks",
        risk_tolerance: int = 5,
        max_position_size: float = 0.2,
        trading_mode: str = "paper",
        strategy_config: Optional[dict] = None,
    ) -> AgentDB:
        """Create a new agent. Agents start paused with balance = initial_balance."""
        agent = AgentDB(
            user_id=user_id,
            name=name,
            strategy=strategy,
            strategy_config=strategy_config or {},
            market_type=market_type,
            balance=initial_balance,
            initial_balance=initial_balance,
            risk_tolerance=risk_tolerance,
            max_position_size=max_position_size,
            trading_mode=trading_mode,
            status="paused",
            total_trades=0,
            winning_trades=0,
            total_profit=0.0,
            error_count=0,
            version=0,
        )
        self.session.add(agent)
        await self.session.flush()
        await self.session.refresh(agent)
        return agent

    async def get_by_id(
        self,
        agent_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> Optional[AgentDB]:
        """Get agent by ID, optionally scoped to its owner."""
        query = (
            select(AgentDB)
            .where(AgentDB.id == agent_id)
            .execution_options(populate_existing=True)
        )
        if user_id:
            query = query.where(AgentDB.user_id == user_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_by_user(
        self,
        user_id: uuid.UUID,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AgentDB]:
        """
        Get all agents for a user.

        Optionally filter by status.
        """
        query = select(AgentDB).where(AgentDB.user_id == user_id)
        if status:
            query = query.where(AgentDB.status == status)

        # Secondary sort by id for stable ordering when created_at is equal
        query = query.order_by(AgentDB.created_at.desc(), AgentDB.id.desc())
        query = query.limit(limit).offset(offset)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_active_ids(self) -> set[uuid.UUID]:
        """IDs of all active agents (for scheduler reconciliation)"""
        result = await self.session.execute(
            select(AgentDB.id).where(AgentDB.status == "active")
        )
        return set(result.scalars().all())

    async def get_status(self, agent_id: uuid.UUID) -> Optional[str]:
        result = await self.session.execute(
            select(AgentDB.status).where(AgentDB.id == agent_id)
        )
        return result.scalar_one_or_none()

    async def update_status(
        self,
        agent_id: uuid.UUID,
        status: str,
        user_id: Optional[uuid.UUID] = None,
        reset_errors: bool = False,
    ) -> Optional[AgentDB]:
        """Set agent status. Returns the refreshed agent, or None if missing."""
        values: dict = {
            "status": status,
            "version": AgentDB.version + 1,
            "updated_at": datetime.now(UTC),
        }
        if reset_errors:
            values["error_count"] = 0

        stmt = update(AgentDB).where(AgentDB.id == agent_id)
        if user_id:
            stmt = stmt.where(AgentDB.user_id == user_id)
        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        await self.session.flush()
        return await self.get_by_id(agent_id)

    async def record_success(self, agent_id: uuid.UUID) -> None:
        """Reset the consecutive error count after a non-failing cycle."""
        now = datetime.now(UTC)
        await self.session.execute(
            update(AgentDB)
            .where(AgentDB.id == agent_id)
            .values(
                error_count=0,
                last_action_at=now,
                version=AgentDB.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    async def increment_error_count(self, agent_id: uuid.UUID) -> int:
        """
        Atomically add one to error_count.

        Returns:
            The new error count, or 0 if the agent no longer exists.
        """
        now = datetime.now(UTC)
        result = await self.session.execute(
            update(AgentDB)
            .where(AgentDB.id == agent_id)
            .values(
                error_count=AgentDB.error_count + 1,
                last_action_at=now,
                version=AgentDB.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return 0
        count = await self.session.execute(
            select(AgentDB.error_count).where(AgentDB.id == agent_id)
        )
        return count.scalar_one()

    async def pause_if_active(self, agent_id: uuid.UUID) -> bool:
        """Move an active agent to paused. Returns True if it was active."""
        result = await self.session.execute(
            update(AgentDB)
            .where(AgentDB.id == agent_id, AgentDB.status == "active")
            .values(
                status="paused",
                version=AgentDB.version + 1,
                updated_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def apply_settlement(
        self,
        agent_id: uuid.UUID,
        expected_version: int,
        balance_delta: float,
        profit_delta: float,
        is_win: bool,
    ) -> None:
        """
        Apply a filled trade to the agent's balance and counters.

        The update only matches when the stored version still equals
        ``expected_version``.

        Raises:
            StaleWriteError: if another writer changed the agent first
        """
        now = datetime.now(UTC)
        values = {
            "balance": AgentDB.balance + balance_delta,
            "total_trades": AgentDB.total_trades + 1,
            "total_profit": AgentDB.total_profit + profit_delta,
            "error_count": 0,
            "last_action_at": now,
            "version": AgentDB.version + 1,
            "updated_at": now,
        }
        if is_win:
            values["winning_trades"] = AgentDB.winning_trades + 1

        result = await self.session.execute(
            update(AgentDB)
            .where(
                AgentDB.id == agent_id,
                AgentDB.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StaleWriteError(
                f"Agent {agent_id} changed since version {expected_version}",
                {"agent_id": str(agent_id), "expected_version": expected_version},
            )

    async def delete(self, agent_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        agent = await self.get_by_id(agent_id, user_id)
        if not agent:
            return False
        await self.session.delete(agent)
        await self.session.flush()
        return True
