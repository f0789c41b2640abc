"""Notification repository"""

import uuid
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import NotificationDB


class NotificationRepository:
    """Repository for in-app notifications"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        user_id: uuid.UUID,
        type: str,
        title: str,
        message: str,
        agent_id: Optional[uuid.UUID] = None,
        trade_id: Optional[uuid.UUID] = None,
    ) -> NotificationDB:
        notification = NotificationDB(
            user_id=user_id,
            agent_id=agent_id,
            trade_id=trade_id,
            type=type,
            title=title,
            message=message,
            read=False,
        )
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def get_by_user(
        self,
        user_id: uuid.UUID,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[NotificationDB]:
        query = select(NotificationDB).where(NotificationDB.user_id == user_id)
        if unread_only:
            query = query.where(NotificationDB.read.is_(False))
        query = (
            query.order_by(NotificationDB.created_at.desc(), NotificationDB.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_unread(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(NotificationDB)
            .where(NotificationDB.user_id == user_id, NotificationDB.read.is_(False))
        )
        return result.scalar_one()

    async def mark_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            update(NotificationDB)
            .where(
                NotificationDB.id == notification_id,
                NotificationDB.user_id == user_id,
            )
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
