"""
Cycle Orchestrator - One autonomous trading cycle for one agent.

Flow per cycle:
1. Skip if a cycle for the agent is already in flight
2. Load the agent, its positions and recent trades
3. Fetch quotes and news concurrently
4. Ask the decision service for a decision
5. Validate and size it (RiskValidator)
6. Execute: pending trade -> broker order -> settlement transaction for
   the quantity the broker filled
7. On failure: log, count, auto-pause at the error limit

Every outcome is returned as a CycleResult; exceptions never escape
``run_cycle``.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings, get_settings
from ..core.errors import (
    AgentNotFoundError,
    InsufficientBalanceError,
    PersistenceError,
    StaleWriteError,
    TradePilotError,
)
from ..db.database import get_session_factory
from ..db.models import AgentDB
from ..db.repositories import (
    AgentActionRepository,
    AgentRepository,
    PositionRepository,
    TradeRepository,
)
from ..models.agent import ActionKind
from ..models.market import Article, Quote, snapshot_quotes
from ..traders import BaseTrader, OrderRequest, OrderResult, OrderSide, create_trader
from .decision_service import DecisionService
from .market_data import MarketDataGateway, create_market_data_gateway, get_symbols_for_market_type
from .news import NewsGateway, create_news_gateway
from .notifications import (
    Notification,
    NotificationService,
    agent_paused_notification,
    fill_overdraft_notification,
    get_notification_service,
    trade_executed_notification,
)
from .risk import RiskCheck, RiskValidator, RiskVerdict

logger = logging.getLogger(__name__)

RECENT_TRADES_IN_PROMPT = 5


class CycleOutcome(str, Enum):
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    NO_MARKET_DATA = "no_market_data"
    HOLD = "hold"
    EXECUTED = "executed"
    SUBMITTED = "submitted"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class CycleResult:
    """Result of one run_cycle call"""

    agent_id: uuid.UUID
    outcome: CycleOutcome
    decision: Optional[dict[str, Any]] = None
    trade_id: Optional[uuid.UUID] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    error_count: Optional[int] = None
    paused: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": str(self.agent_id),
            "outcome": self.outcome.value,
            "decision": self.decision,
            "trade_id": str(self.trade_id) if self.trade_id else None,
            "error": self.error,
            "error_code": self.error_code,
            "error_count": self.error_count,
            "paused": self.paused,
        }


@dataclass
class _CycleState:
    """Mutable bookkeeping for the failure handler"""

    stage: str = "load"
    pending_trade_id: Optional[uuid.UUID] = None
    decision: Optional[dict[str, Any]] = None
    quotes: dict[str, Quote] = field(default_factory=dict)


class CycleOrchestrator:
    """
    Runs trading cycles.

    Collaborators are injected; defaults are built from settings. Each phase
    opens its own session so no transaction stays open across a network call.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        market_data: Optional[MarketDataGateway] = None,
        news: Optional[NewsGateway] = None,
        decision_service: Optional[DecisionService] = None,
        trader_factory: Optional[Callable[[AgentDB], BaseTrader]] = None,
        notifications: Optional[NotificationService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self.market_data = market_data or create_market_data_gateway(self.settings)
        self.news = news or create_news_gateway(self.settings)
        self.decision_service = decision_service or DecisionService(settings=self.settings)
        self.trader_factory = trader_factory or (lambda agent: create_trader(agent, self.settings))
        self.notifications = notifications or get_notification_service()
        self.risk = RiskValidator(
            min_confidence=self.settings.min_trade_confidence,
            allow_short_selling=self.settings.allow_short_selling,
        )
        self._in_flight: set[uuid.UUID] = set()

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    def is_running(self, agent_id: uuid.UUID) -> bool:
        return agent_id in self._in_flight

    @property
    def in_flight(self) -> frozenset[uuid.UUID]:
        return frozenset(self._in_flight)

    async def run_cycle(self, agent_id: uuid.UUID) -> CycleResult:
        """Run one cycle. Concurrent calls for the same agent are skipped."""
        if agent_id in self._in_flight:
            logger.debug(f"Agent {agent_id}: cycle already in flight, skipping")
            return CycleResult(agent_id, CycleOutcome.SKIPPED)

        self._in_flight.add(agent_id)
        try:
            return await self._run(agent_id)
        finally:
            self._in_flight.discard(agent_id)

    async def close(self) -> None:
        await self.decision_service.close()

    # ------------------------------------------------------------------
    # Cycle phases
    # ------------------------------------------------------------------

    async def _run(self, agent_id: uuid.UUID) -> CycleResult:
        state = _CycleState()
        try:
            agent, positions, recent_trades = await self._load(agent_id)
        except AgentNotFoundError:
            logger.warning(f"Agent {agent_id} not found, cycle skipped")
            return CycleResult(
                agent_id,
                CycleOutcome.NOT_FOUND,
                error="Agent not found",
                error_code=AgentNotFoundError.code.value,
            )
        except SQLAlchemyError as e:
            logger.error(f"Agent {agent_id}: failed to load agent: {e}")
            return CycleResult(
                agent_id,
                CycleOutcome.FAILED,
                error="Failed to load agent",
                error_code=PersistenceError.code.value,
            )

        try:
            return await self._execute(agent, positions, recent_trades, state)
        except Exception as e:
            return await self._handle_failure(agent, state, e)

    async def _load(self, agent_id: uuid.UUID) -> tuple[AgentDB, list, list]:
        async with self.session_factory() as session:
            agent = await AgentRepository(session).get_by_id(agent_id)
            if agent is None:
                raise AgentNotFoundError(f"Agent {agent_id} not found")
            positions = await PositionRepository(session).get_by_agent(agent_id)
            recent_trades = await TradeRepository(session).get_by_agent(
                agent_id, limit=RECENT_TRADES_IN_PROMPT
            )
            return agent, positions, recent_trades

    async def _execute(
        self,
        agent: AgentDB,
        positions: list,
        recent_trades: list,
        state: _CycleState,
    ) -> CycleResult:
        state.stage = "market_data"
        symbols = get_symbols_for_market_type(agent.market_type)
        quotes, news = await self._gather_inputs(symbols)
        state.quotes = quotes

        if not quotes:
            logger.info(f"Agent {agent.id}: no market data for {symbols}")
            async with self.session_factory() as session:
                await AgentActionRepository(session).log(
                    agent.id,
                    agent.user_id,
                    ActionKind.ANALYSIS.value,
                    action_data={"status": "no_market_data", "symbols": symbols},
                    reasoning="No market data available",
                )
                await AgentRepository(session).record_success(agent.id)
                await session.commit()
            return CycleResult(agent.id, CycleOutcome.NO_MARKET_DATA, error_count=0)

        state.stage = "decision"
        decision = await self.decision_service.get_decision(
            agent, quotes, news, positions=positions, recent_trades=recent_trades
        )
        state.decision = decision.model_dump(mode="json")

        state.stage = "validation"
        held = {p.symbol: p.quantity for p in positions}
        check = self.risk.validate(
            decision,
            balance=agent.balance,
            max_position_size=agent.max_position_size,
            quotes=quotes,
            held_quantity=held.get(decision.symbol or "", 0.0),
        )
        state.decision = check.decision.model_dump(mode="json")

        if check.verdict == RiskVerdict.HOLD:
            return await self._record_hold(agent, check, quotes)
        if check.verdict == RiskVerdict.ABORT:
            return await self._record_abort(agent, check, quotes)

        state.stage = "execution"
        trade_id = await self._open_trade(agent, check, quotes)
        state.pending_trade_id = trade_id

        result = await self._place_order(agent, check, trade_id)

        if result.filled_quantity <= 0:
            state.pending_trade_id = None
            return await self._record_submitted(agent, check, trade_id, result)

        state.stage = "settlement"
        notifications = await self._settle_with_retry(agent, check, trade_id, result)
        state.pending_trade_id = None

        for notification in notifications:
            await self.notifications.dispatch(notification)

        logger.info(
            f"Agent {agent.id}: {check.side.upper()} {result.filled_quantity:g}/{check.quantity:g} "
            f"{check.symbol} @ {result.fill_price:.2f} (order {result.order_id})"
        )
        return CycleResult(
            agent.id,
            CycleOutcome.EXECUTED,
            decision=state.decision,
            trade_id=trade_id,
            error_count=0,
        )

    async def _gather_inputs(self, symbols: list[str]) -> tuple[dict[str, Quote], list[Article]]:
        results = await asyncio.gather(
            self.market_data.get_quotes(symbols),
            self.news.get_news(symbols=symbols),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        quotes, news = results
        return quotes, news

    async def _record_hold(
        self, agent: AgentDB, check: RiskCheck, quotes: dict[str, Quote]
    ) -> CycleResult:
        decision = check.decision
        async with self.session_factory() as session:
            await AgentActionRepository(session).log(
                agent.id,
                agent.user_id,
                ActionKind.DECISION.value,
                action_data={
                    "action": "hold",
                    "symbol": check.symbol,
                    "reason": check.reason,
                },
                reasoning=decision.reasoning,
                confidence_score=decision.confidence,
                market_data=snapshot_quotes(quotes),
            )
            await AgentRepository(session).record_success(agent.id)
            await session.commit()

        logger.info(f"Agent {agent.id}: hold ({decision.confidence}%)")
        return CycleResult(
            agent.id,
            CycleOutcome.HOLD,
            decision=decision.model_dump(mode="json"),
            error_count=0,
        )

    async def _record_abort(
        self, agent: AgentDB, check: RiskCheck, quotes: dict[str, Quote]
    ) -> CycleResult:
        """No order is opened; the failed attempt is kept in the audit log only."""
        decision = check.decision
        async with self.session_factory() as session:
            await AgentActionRepository(session).log(
                agent.id,
                agent.user_id,
                ActionKind.TRADE.value,
                action_data={
                    "status": "failed",
                    "side": check.side,
                    "symbol": check.symbol,
                    "requested_quantity": check.requested_quantity,
                    "price": check.price,
                    "reason": check.reason,
                },
                reasoning=decision.reasoning,
                confidence_score=decision.confidence,
                market_data=snapshot_quotes(quotes),
            )
            await AgentRepository(session).record_success(agent.id)
            await session.commit()

        logger.info(f"Agent {agent.id}: {check.side} {check.symbol} aborted: {check.reason}")
        return CycleResult(
            agent.id,
            CycleOutcome.ABORTED,
            decision=decision.model_dump(mode="json"),
            error=check.reason,
            error_code=InsufficientBalanceError.code.value,
            error_count=0,
        )

    async def _open_trade(
        self, agent: AgentDB, check: RiskCheck, quotes: dict[str, Quote]
    ) -> uuid.UUID:
        """Log the decision and create the pending trade."""
        decision = check.decision
        async with self.session_factory() as session:
            await AgentActionRepository(session).log(
                agent.id,
                agent.user_id,
                ActionKind.DECISION.value,
                action_data={
                    "action": check.side,
                    "symbol": check.symbol,
                    "quantity": check.quantity,
                    "requested_quantity": check.requested_quantity,
                    "price": check.price,
                    "notes": check.notes,
                },
                reasoning=decision.reasoning,
                confidence_score=decision.confidence,
                market_data=snapshot_quotes(quotes),
            )
            trade = await TradeRepository(session).create(
                agent_id=agent.id,
                user_id=agent.user_id,
                symbol=check.symbol,
                side=check.side,
                quantity=check.quantity,
                price=check.price,
                reasoning=decision.reasoning,
            )
            await session.commit()
            return trade.id

    async def _place_order(
        self, agent: AgentDB, check: RiskCheck, trade_id: uuid.UUID
    ) -> OrderResult:
        trader = self.trader_factory(agent)
        try:
            return await trader.place_order(
                OrderRequest(
                    symbol=check.symbol,
                    side=OrderSide(check.side),
                    quantity=check.quantity,
                    client_order_id=str(trade_id),
                    reference_price=check.price,
                )
            )
        finally:
            await trader.close()

    async def _record_submitted(
        self,
        agent: AgentDB,
        check: RiskCheck,
        trade_id: uuid.UUID,
        result: OrderResult,
    ) -> CycleResult:
        """The broker accepted the order but filled nothing; the trade stays pending."""
        async with self.session_factory() as session:
            await AgentActionRepository(session).log(
                agent.id,
                agent.user_id,
                ActionKind.TRADE.value,
                action_data={
                    "status": "submitted",
                    "trade_id": str(trade_id),
                    "side": check.side,
                    "symbol": check.symbol,
                    "quantity": check.quantity,
                    "order_id": result.order_id,
                    "order_status": result.status.value,
                },
                reasoning=check.decision.reasoning,
                confidence_score=check.decision.confidence,
            )
            await AgentRepository(session).record_success(agent.id)
            await session.commit()

        logger.info(
            f"Agent {agent.id}: order {result.order_id} for {check.quantity:g} {check.symbol} "
            f"accepted with no fill, trade {trade_id} left pending"
        )
        return CycleResult(
            agent.id,
            CycleOutcome.SUBMITTED,
            decision=check.decision.model_dump(mode="json"),
            trade_id=trade_id,
            error_count=0,
        )

    async def _settle_with_retry(
        self,
        agent: AgentDB,
        check: RiskCheck,
        trade_id: uuid.UUID,
        result: OrderResult,
    ) -> list[Notification]:
        attempts = max(1, self.settings.settlement_max_retries)
        for attempt in range(1, attempts + 1):
            async with self.session_factory() as session:
                try:
                    notifications = await self._settle(session, agent, check, trade_id, result)
                    for notification in notifications:
                        await self.notifications.record(session, notification)
                    await session.commit()
                    return notifications
                except StaleWriteError as e:
                    await session.rollback()
                    logger.warning(
                        f"Agent {agent.id}: settlement attempt {attempt}/{attempts} stale: {e.message}"
                    )
        raise PersistenceError(
            f"Settlement of trade {trade_id} failed after {attempts} attempts",
            {"trade_id": str(trade_id)},
        )

    async def _settle(
        self,
        session: AsyncSession,
        agent: AgentDB,
        check: RiskCheck,
        trade_id: uuid.UUID,
        result: OrderResult,
    ) -> list[Notification]:
        """
        Apply a fill in the caller's transaction.

        Only the quantity the broker filled is settled. A fill the broker
        executed is always applied; one that costs more than the balance
        overdraws it and adds a risk warning.

        Returns the notifications to send, empty if the trade had already
        been settled.

        Raises:
            StaleWriteError: the agent row changed during settlement
        """
        agent_repo = AgentRepository(session)
        trade_repo = TradeRepository(session)

        current = await agent_repo.get_by_id(agent.id)
        if current is None:
            raise AgentNotFoundError(f"Agent {agent.id} deleted during settlement")

        trade = await trade_repo.get_by_id(trade_id)
        if trade is None or trade.status != "pending":
            logger.info(f"Trade {trade_id} already settled, skipping")
            return []

        fill_price = result.fill_price
        quantity = result.filled_quantity
        total = quantity * fill_price
        balance_delta = -total if check.side == "buy" else total

        notifications: list[Notification] = []
        if current.balance + balance_delta < 0:
            logger.warning(
                f"Agent {agent.id}: fill of ${total:.2f} on trade {trade_id} "
                f"exceeds balance ${current.balance:.2f}"
            )
            notifications.append(
                fill_overdraft_notification(
                    user_id=agent.user_id,
                    agent_id=agent.id,
                    trade_id=trade_id,
                    symbol=check.symbol,
                    total=total,
                    balance=current.balance,
                    agent_name=agent.name,
                )
            )

        realized = await PositionRepository(session).apply_fill(
            agent.id, check.symbol, check.side, quantity, fill_price
        )
        await trade_repo.mark_completed(
            trade_id, fill_price, result.order_id, realized, quantity=quantity
        )
        await agent_repo.apply_settlement(
            agent.id,
            expected_version=current.version,
            balance_delta=balance_delta,
            profit_delta=realized or 0.0,
            is_win=realized is not None and realized > 0,
        )
        await AgentActionRepository(session).log(
            agent.id,
            agent.user_id,
            ActionKind.TRADE.value,
            action_data={
                "status": "completed",
                "trade_id": str(trade_id),
                "side": check.side,
                "symbol": check.symbol,
                "quantity": quantity,
                "requested_quantity": check.quantity,
                "price": fill_price,
                "total_amount": total,
                "order_id": result.order_id,
                "order_status": result.status.value,
                "realized_pnl": realized,
            },
            reasoning=check.decision.reasoning,
            confidence_score=check.decision.confidence,
        )
        notifications.insert(
            0,
            trade_executed_notification(
                user_id=agent.user_id,
                agent_id=agent.id,
                trade_id=trade_id,
                side=check.side,
                quantity=quantity,
                symbol=check.symbol,
                price=fill_price,
                agent_name=agent.name,
            ),
        )
        return notifications

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _handle_failure(
        self, agent: AgentDB, state: _CycleState, error: Exception
    ) -> CycleResult:
        if isinstance(error, TradePilotError):
            message = error.message
            code = error.code.value
            counted = error.counts_as_failure
        else:
            message = f"{type(error).__name__}: {error}"
            code = "INTERNAL_ERROR"
            counted = True

        if counted:
            logger.error(f"Agent {agent.id}: cycle failed at {state.stage}: {message}")
        else:
            logger.warning(f"Agent {agent.id}: cycle aborted at {state.stage}: {message}")

        error_count: Optional[int] = None
        paused = False
        notification: Optional[Notification] = None
        try:
            async with self.session_factory() as session:
                agent_repo = AgentRepository(session)
                actions = AgentActionRepository(session)

                if state.pending_trade_id is not None:
                    await TradeRepository(session).mark_failed(state.pending_trade_id, message)

                await actions.log(
                    agent.id,
                    agent.user_id,
                    ActionKind.ERROR.value if counted else ActionKind.TRADE.value,
                    action_data={
                        "status": "failed",
                        "stage": state.stage,
                        "error_code": code,
                        "message": message,
                        "decision": state.decision,
                        "trade_id": str(state.pending_trade_id) if state.pending_trade_id else None,
                    },
                    reasoning=f"Cycle failed: {message}" if counted else message,
                )

                if counted:
                    error_count = await agent_repo.increment_error_count(agent.id)
                    if error_count >= self.settings.max_consecutive_errors:
                        paused = await agent_repo.pause_if_active(agent.id)
                    if paused:
                        await actions.log(
                            agent.id,
                            agent.user_id,
                            ActionKind.STATUS_CHANGE.value,
                            action_data={
                                "from": "active",
                                "to": "paused",
                                "reason": "max_consecutive_errors",
                                "error_count": error_count,
                            },
                            reasoning=f"Paused after {error_count} consecutive errors",
                        )
                        notification = agent_paused_notification(
                            user_id=agent.user_id,
                            agent_id=agent.id,
                            agent_name=agent.name,
                            last_error=message,
                        )
                        await self.notifications.record(session, notification)
                else:
                    await agent_repo.record_success(agent.id)
                    error_count = 0

                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Agent {agent.id}: failed to record cycle error: {e}")

        if paused:
            logger.warning(f"Agent {agent.id} auto-paused after {error_count} consecutive errors")
            if notification is not None:
                await self.notifications.dispatch(notification)

        return CycleResult(
            agent.id,
            CycleOutcome.FAILED if counted else CycleOutcome.ABORTED,
            decision=state.decision,
            trade_id=state.pending_trade_id,
            error=message,
            error_code=code,
            error_count=error_count,
            paused=paused,
        )


# Global orchestrator instance
_orchestrator: Optional[CycleOrchestrator] = None


def get_cycle_orchestrator() -> CycleOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = CycleOrchestrator()
    return _orchestrator


async def reset_cycle_orchestrator() -> None:
    global _orchestrator
    if _orchestrator is not None:
        await _orchestrator.close()
    _orchestrator = None
