"""
Background scheduling of agent trading cycles.

One in-process asyncio timer per active agent, reconciled with the store.
"""

from .scheduler import AgentScheduler, get_scheduler, reset_scheduler

__all__ = [
    "AgentScheduler",
    "get_scheduler",
    "reset_scheduler",
]
