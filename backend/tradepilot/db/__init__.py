"""Database module - SQLAlchemy models and database connection"""

from .database import (
    close_db,
    get_db,
    get_engine,
    get_session_factory,
    init_db,
    set_session_factory,
)
from .models import (
    AgentActionDB,
    AgentDB,
    AgentPositionDB,
    Base,
    NotificationDB,
    TradeDB,
)

__all__ = [
    "close_db",
    "get_db",
    "get_engine",
    "get_session_factory",
    "init_db",
    "set_session_factory",
    "AgentActionDB",
    "AgentDB",
    "AgentPositionDB",
    "Base",
    "NotificationDB",
    "TradeDB",
]
