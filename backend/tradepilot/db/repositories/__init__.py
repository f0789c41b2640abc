"""Repository layer for database operations"""

from .action import AgentActionRepository
from .agent import AgentRepository
from .notification import NotificationRepository
from .position import PositionRepository, compute_fill
from .trade import TradeRepository

__all__ = [
    "AgentActionRepository",
    "AgentRepository",
    "NotificationRepository",
    "PositionRepository",
    "TradeRepository",
    "compute_fill",
]
