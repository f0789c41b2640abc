"""FastAPI dependencies for dependency injection"""

import logging
import uuid
from typing import Annotated, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .errors import missing_user_error
from ..db.database import get_db
from ..workers.scheduler import AgentScheduler, get_scheduler

logger = logging.getLogger(__name__)


async def get_current_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> uuid.UUID:
    """
    Caller identity from the ``X-User-Id`` header set by the upstream gateway.

    Raises:
        HTTPException 401: If the header is missing or not a UUID
    """
    if not x_user_id:
        raise missing_user_error()
    try:
        return uuid.UUID(x_user_id.strip())
    except ValueError:
        logger.warning(f"Rejected malformed X-User-Id header: {x_user_id[:64]!r}")
        raise missing_user_error()


def get_agent_scheduler() -> AgentScheduler:
    return get_scheduler()


# Type aliases for cleaner route signatures
SettingsDep = Annotated[Settings, Depends(get_settings)]
CurrentUserDep = Annotated[uuid.UUID, Depends(get_current_user_id)]
DbSessionDep = Annotated[AsyncSession, Depends(get_db)]
SchedulerDep = Annotated[AgentScheduler, Depends(get_agent_scheduler)]
