"""Agent action (audit log) repository"""

import uuid
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AgentActionDB


class AgentActionRepository:
    """Append-only access to the agent audit log"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        agent_id: uuid.UUID,
        user_id: uuid.UUID,
        action_type: str,
        action_data: Optional[dict[str, Any]] = None,
        reasoning: Optional[str] = None,
        confidence_score: Optional[int] = None,
        market_data: Optional[dict[str, Any]] = None,
    ) -> AgentActionDB:
        action = AgentActionDB(
            agent_id=agent_id,
            user_id=user_id,
            action_type=action_type,
            action_data=action_data or {},
            reasoning=reasoning,
            confidence_score=confidence_score,
            market_data=market_data,
        )
        self.session.add(action)
        await self.session.flush()
        return action

    async def get_by_agent(
        self,
        agent_id: uuid.UUID,
        action_type: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AgentActionDB]:
        """Actions for an agent, newest first"""
        query = select(AgentActionDB).where(AgentActionDB.agent_id == agent_id)
        if action_type:
            query = query.where(AgentActionDB.action_type == action_type)
        query = (
            query.order_by(AgentActionDB.created_at.desc(), AgentActionDB.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
