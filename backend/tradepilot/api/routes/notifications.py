"""Notification routes"""

import logging
import uuid

from fastapi import APIRouter, Query
from pydantic import BaseModel

from ...core.dependencies import CurrentUserDep, DbSessionDep
from ...core.errors import ErrorCode, create_http_exception
from ...db.repositories import NotificationRepository
from ...models.agent import NotificationResponse
from ...services.notifications import get_notification_service

router = APIRouter(prefix="/notifications", tags=["Notifications"])
logger = logging.getLogger(__name__)


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    unread_count: int


class NotificationStatus(BaseModel):
    """External channel status"""

    enabled: bool
    configured_channels: list[str]


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    user_id: CurrentUserDep,
    db: DbSessionDep,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    repo = NotificationRepository(db)
    items = await repo.get_by_user(user_id, unread_only=unread_only, limit=limit, offset=offset)
    return NotificationListResponse(
        items=[NotificationResponse.from_db(n) for n in items],
        unread_count=await repo.count_unread(user_id),
    )


@router.post("/{notification_id}/read")
async def mark_notification_read(
    notification_id: uuid.UUID,
    user_id: CurrentUserDep,
    db: DbSessionDep,
):
    if not await NotificationRepository(db).mark_read(notification_id, user_id):
        raise create_http_exception(
            code=ErrorCode.AUTHZ_RESOURCE_NOT_FOUND,
            user_message=f"Notification {notification_id} not found",
            status_code=404,
            log_error=False,
        )
    return {"id": str(notification_id), "read": True}


@router.get("/channels", response_model=NotificationStatus)
async def get_channel_status(user_id: CurrentUserDep):
    """Which external channels are configured"""
    service = get_notification_service()
    return NotificationStatus(
        enabled=service.is_any_configured(),
        configured_channels=[
            channel.value
            for channel, provider in service.providers.items()
            if provider.is_configured()
        ],
    )
