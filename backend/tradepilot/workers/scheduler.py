"""
Agent scheduler - one timer task per active agent.

Each timer fires immediately, then every interval. A tick re-reads the
agent's status and stops the timer once the agent is no longer active.
Cycles run as their own tasks so a slow cycle never delays the timer; the
orchestrator's in-flight guard turns overlapping ticks into no-ops.

A reconcile loop keeps the set of timers in line with the store, so timers
are restored after a restart and dropped for agents paused elsewhere.
"""

import asyncio
import logging
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings, get_settings
from ..db.database import get_session_factory
from ..db.repositories.agent import AgentRepository
from ..services.cycle_orchestrator import (
    CycleOrchestrator,
    CycleOutcome,
    CycleResult,
    get_cycle_orchestrator,
)

logger = logging.getLogger(__name__)


class AgentScheduler:
    """
    Manages per-agent timers.

    Lifecycle:
    1. start(): reconcile with the store, then reconcile periodically
    2. start_agent()/stop_agent() on API status changes
    3. stop(): cancel timers, wait (bounded) for in-flight cycles
    """

    def __init__(
        self,
        orchestrator: Optional[CycleOrchestrator] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._orchestrator = orchestrator
        self._session_factory = session_factory
        self._timers: dict[uuid.UUID, asyncio.Task] = {}
        self._intervals: dict[uuid.UUID, int] = {}
        self._cycles: set[asyncio.Task] = set()
        self._reconcile_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def orchestrator(self) -> CycleOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = get_cycle_orchestrator()
        return self._orchestrator

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start timers for active agents and the reconcile loop"""
        if self._running:
            return
        self._running = True

        try:
            await self.reconcile()
        except SQLAlchemyError as e:
            logger.error(f"Initial scheduler reconcile failed: {e}")

        self._reconcile_task = asyncio.create_task(self._reconcile_loop())
        logger.info(f"Agent scheduler started with {len(self._timers)} agents")

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel all timers and wait for in-flight cycles to finish"""
        self._running = False
        timeout = self.settings.scheduler_shutdown_timeout if timeout is None else timeout

        if self._reconcile_task is not None:
            self._reconcile_task.cancel()
            try:
                await self._reconcile_task
            except asyncio.CancelledError:
                pass
            self._reconcile_task = None

        timers = list(self._timers.values())
        self._timers.clear()
        self._intervals.clear()
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        if self._cycles:
            done, pending = await asyncio.wait(set(self._cycles), timeout=timeout)
            if pending:
                logger.warning(
                    f"{len(pending)} cycles still running after {timeout}s, cancelling"
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        logger.info("Agent scheduler stopped")

    def start_agent(self, agent_id: uuid.UUID, interval_seconds: Optional[int] = None) -> bool:
        """
        Start the timer for an agent.

        A running timer is restarted when an explicit interval differs from
        the one it runs on.

        Returns:
            False if a timer is already running for the agent at that interval.
        """
        existing = self._timers.get(agent_id)
        if existing is not None and not existing.done():
            if interval_seconds is None or interval_seconds == self._intervals.get(agent_id):
                return False
            existing.cancel()
            logger.info(f"Rescheduling agent {agent_id} from every {self._intervals.get(agent_id)}s")

        interval = interval_seconds or self.settings.scheduler_interval_seconds
        self._intervals[agent_id] = interval
        self._timers[agent_id] = asyncio.create_task(self._timer_loop(agent_id, interval))
        logger.info(f"Scheduled agent {agent_id} every {interval}s")
        return True

    def stop_agent(self, agent_id: uuid.UUID) -> bool:
        """
        Cancel an agent's timer. An in-flight cycle is left to finish.

        Returns:
            False if no timer was running.
        """
        task = self._timers.pop(agent_id, None)
        self._intervals.pop(agent_id, None)
        if task is None:
            return False
        task.cancel()
        logger.info(f"Unscheduled agent {agent_id}")
        return True

    def is_scheduled(self, agent_id: uuid.UUID) -> bool:
        task = self._timers.get(agent_id)
        return task is not None and not task.done()

    def get_interval(self, agent_id: uuid.UUID) -> Optional[int]:
        return self._intervals.get(agent_id) if self.is_scheduled(agent_id) else None

    def list_agents(self) -> list[uuid.UUID]:
        return [agent_id for agent_id, task in self._timers.items() if not task.done()]

    async def trigger(self, agent_id: uuid.UUID) -> CycleResult:
        """Run one cycle now and return its result"""
        return await self.orchestrator.run_cycle(agent_id)

    async def reconcile(self) -> dict[str, list[uuid.UUID]]:
        """Align timers with the agents currently active in the store."""
        async with self.session_factory() as session:
            active = await AgentRepository(session).get_active_ids()

        started = [agent_id for agent_id in active if self.start_agent(agent_id)]
        stopped = [
            agent_id
            for agent_id in list(self._timers.keys())
            if agent_id not in active and self.stop_agent(agent_id)
        ]
        if started or stopped:
            logger.info(f"Reconciled scheduler: started={len(started)}, stopped={len(stopped)}")
        return {"started": started, "stopped": stopped}

    async def _reconcile_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.settings.scheduler_reconcile_seconds)
                await self.reconcile()
            except asyncio.CancelledError:
                break
            except SQLAlchemyError as e:
                logger.error(f"Scheduler reconcile error: {e}")

    async def _timer_loop(self, agent_id: uuid.UUID, interval: int) -> None:
        current = asyncio.current_task()
        try:
            while True:
                status = await self._read_status(agent_id)
                if status is not None and status != "active":
                    logger.info(f"Agent {agent_id} is {status}, stopping timer")
                    break
                if status == "active":
                    self._spawn_cycle(agent_id)
                await asyncio.sleep(interval)
        finally:
            if self._timers.get(agent_id) is current:
                self._timers.pop(agent_id, None)
                self._intervals.pop(agent_id, None)

    async def _read_status(self, agent_id: uuid.UUID) -> Optional[str]:
        """Agent status, "missing" if deleted, None if the store is unreachable"""
        try:
            async with self.session_factory() as session:
                status = await AgentRepository(session).get_status(agent_id)
        except SQLAlchemyError as e:
            logger.error(f"Agent {agent_id}: status check failed, skipping tick: {e}")
            return None
        return status if status is not None else "missing"

    def _spawn_cycle(self, agent_id: uuid.UUID) -> None:
        task = asyncio.create_task(self._run_cycle(agent_id))
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)

    async def _run_cycle(self, agent_id: uuid.UUID) -> None:
        try:
            result = await self.orchestrator.run_cycle(agent_id)
        except Exception as e:
            logger.exception(f"Agent {agent_id}: unhandled cycle error: {e}")
            return

        if result.paused or result.outcome == CycleOutcome.NOT_FOUND:
            self.stop_agent(agent_id)


# Global scheduler instance
_scheduler: Optional[AgentScheduler] = None


def get_scheduler() -> AgentScheduler:
    """Get or create the scheduler singleton"""
    global _scheduler
    if _scheduler is None:
        _scheduler = AgentScheduler()
    return _scheduler


async def reset_scheduler() -> None:
    """Stop and drop the scheduler (for testing)"""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
    _scheduler = None
