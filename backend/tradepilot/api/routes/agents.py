"""
Agent routes - trading agent management.

Handles creation, status control (activate/pause/stop), manual cycle
triggers and history queries.
"""

import logging
import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel

from ...core.dependencies import CurrentUserDep, DbSessionDep, SchedulerDep, SettingsDep
from ...core.errors import agent_not_found_error, invalid_state_error
from ...db.repositories import AgentActionRepository, AgentRepository, TradeRepository
from ...models.agent import (
    ActionKind,
    AgentActionResponse,
    AgentCreate,
    AgentResponse,
    AgentStatus,
    TradeResponse,
)
from ...services.strategy_templates import build_strategy_config

router = APIRouter(prefix="/agents", tags=["Agents"])
logger = logging.getLogger(__name__)


class CycleRunResponse(BaseModel):
    """Result of a manually triggered cycle"""
    agent_id: str
    outcome: str
    decision: Optional[dict] = None
    trade_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    error_count: Optional[int] = None
    paused: bool = False


async def _get_owned_agent(repo: AgentRepository, agent_id: uuid.UUID, user_id: uuid.UUID):
    agent = await repo.get_by_id(agent_id, user_id)
    if not agent:
        raise agent_not_found_error(agent_id)
    return agent


# ==================== CRUD ====================


@router.post("", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
async def create_agent(
    data: AgentCreate,
    user_id: CurrentUserDep,
    db: DbSessionDep,
):
    """Create a new agent. Agents start paused."""
    repo = AgentRepository(db)
    agent = await repo.create(
        user_id=user_id,
        name=data.name,
        strategy=data.strategy.value,
        initial_balance=data.initial_balance,
        market_type=data.market_type.value,
        risk_tolerance=data.risk_tolerance,
        max_position_size=data.max_position_size,
        trading_mode=data.trading_mode.value,
        strategy_config=build_strategy_config(data.strategy.value, data.strategy_config),
    )
    logger.info(f"User {user_id} created agent {agent.id} ({data.strategy.value})")
    return AgentResponse.from_db(agent)


@router.get("", response_model=list[AgentResponse])
async def list_agents(
    user_id: CurrentUserDep,
    db: DbSessionDep,
    status_filter: Optional[AgentStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    repo = AgentRepository(db)
    agents = await repo.get_by_user(
        user_id,
        status=status_filter.value if status_filter else None,
        limit=limit,
        offset=offset,
    )
    return [AgentResponse.from_db(a) for a in agents]


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(
    agent_id: uuid.UUID,
    user_id: CurrentUserDep,
    db: DbSessionDep,
):
    agent = await _get_owned_agent(AgentRepository(db), agent_id, user_id)
    return AgentResponse.from_db(agent)


# ==================== Status control ====================


@router.post("/{agent_id}/activate", response_model=AgentResponse)
async def activate_agent(
    agent_id: uuid.UUID,
    user_id: CurrentUserDep,
    db: DbSessionDep,
    scheduler: SchedulerDep,
    settings: SettingsDep,
    mode: Literal["autopilot", "manual"] = Query("autopilot"),
):
    """
    Activate an agent and start its timer.

    ``mode=manual`` runs on the slower manual interval.
    """
    repo = AgentRepository(db)
    await _get_owned_agent(repo, agent_id, user_id)

    agent = await repo.update_status(agent_id, AgentStatus.ACTIVE.value, user_id, reset_errors=True)
    if agent is None:
        raise agent_not_found_error(agent_id)
    await db.commit()

    interval = (
        settings.manual_interval_seconds if mode == "manual"
        else settings.scheduler_interval_seconds
    )
    if settings.scheduler_enabled:
        scheduler.start_agent(agent_id, interval_seconds=interval)
    logger.info(f"Agent {agent_id} activated ({mode}, every {interval}s)")
    return AgentResponse.from_db(agent)


async def _deactivate(
    agent_id: uuid.UUID,
    user_id: uuid.UUID,
    target: AgentStatus,
    db,
    scheduler,
) -> AgentResponse:
    repo = AgentRepository(db)
    current = await _get_owned_agent(repo, agent_id, user_id)
    if current.status == AgentStatus.STOPPED.value and target == AgentStatus.PAUSED:
        raise invalid_state_error("A stopped agent must be activated before it can be paused")

    agent = await repo.update_status(agent_id, target.value, user_id)
    if agent is None:
        raise agent_not_found_error(agent_id)
    await db.commit()

    scheduler.stop_agent(agent_id)
    logger.info(f"Agent {agent_id} {target.value}")
    return AgentResponse.from_db(agent)


@router.post("/{agent_id}/pause", response_model=AgentResponse)
async def pause_agent(
    agent_id: uuid.UUID,
    user_id: CurrentUserDep,
    db: DbSessionDep,
    scheduler: SchedulerDep,
):
    return await _deactivate(agent_id, user_id, AgentStatus.PAUSED, db, scheduler)


@router.post("/{agent_id}/stop", response_model=AgentResponse)
async def stop_agent(
    agent_id: uuid.UUID,
    user_id: CurrentUserDep,
    db: DbSessionDep,
    scheduler: SchedulerDep,
):
    return await _deactivate(agent_id, user_id, AgentStatus.STOPPED, db, scheduler)


@router.post("/{agent_id}/run", response_model=CycleRunResponse)
async def run_agent_now(
    agent_id: uuid.UUID,
    user_id: CurrentUserDep,
    db: DbSessionDep,
    scheduler: SchedulerDep,
):
    """Run one trading cycle immediately and return its outcome."""
    await _get_owned_agent(AgentRepository(db), agent_id, user_id)
    # Release the read transaction before the cycle opens its own sessions
    await db.commit()

    result = await scheduler.trigger(agent_id)
    return CycleRunResponse(**result.to_dict())


# ==================== History ====================


@router.get("/{agent_id}/trades", response_model=list[TradeResponse])
async def list_agent_trades(
    agent_id: uuid.UUID,
    user_id: CurrentUserDep,
    db: DbSessionDep,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    await _get_owned_agent(AgentRepository(db), agent_id, user_id)
    trades = await TradeRepository(db).get_by_agent(agent_id, limit=limit, offset=offset)
    return [TradeResponse.from_db(t) for t in trades]


@router.get("/{agent_id}/actions", response_model=list[AgentActionResponse])
async def list_agent_actions(
    agent_id: uuid.UUID,
    user_id: CurrentUserDep,
    db: DbSessionDep,
    action_type: Optional[ActionKind] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    await _get_owned_agent(AgentRepository(db), agent_id, user_id)
    actions = await AgentActionRepository(db).get_by_agent(
        agent_id,
        action_type=action_type.value if action_type else None,
        limit=limit,
        offset=offset,
    )
    return [AgentActionResponse.from_db(a) for a in actions]
