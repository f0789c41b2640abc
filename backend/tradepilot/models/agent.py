"""
Agent models for trading agents.

An Agent is a configured trading identity: a strategy, a market universe,
a paper or live balance and risk settings. Active agents are polled by the
scheduler and run one trading cycle per tick.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AgentStatus(str, Enum):
    """Agent lifecycle status"""

    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"


class StrategyType(str, Enum):
    MOMENTUM = "momentum"
    MEAN_REVERSION = "mean_reversion"
    SENTIMENT = "sentiment"
    SCALPING = "scalping"
    SWING = "swing"
    ARBITRAGE = "arbitrage"


class MarketType(str, Enum):
    STOCKS = "stocks"
    CRYPTO = "crypto"
    BOTH = "both"


class TradingMode(str, Enum):
    PAPER = "paper"
    LIVE = "live"


class ActionKind(str, Enum):
    """Audit log entry types"""

    DECISION = "decision"
    TRADE = "trade"
    ANALYSIS = "analysis"
    ERROR = "error"
    STATUS_CHANGE = "status_change"


# =============================================================================
# Request/Response Models
# =============================================================================


class AgentCreate(BaseModel):
    """Request model for creating an agent"""

    name: str = Field(..., min_length=1, max_length=100)
    strategy: StrategyType
    market_type: MarketType = MarketType.STOCKS
    initial_balance: float = Field(..., gt=0)
    risk_tolerance: int = Field(default=5, ge=1, le=10)
    max_position_size: float = Field(default=0.2, gt=0, le=1)
    trading_mode: TradingMode = TradingMode.PAPER
    # Overrides merged on top of the strategy template defaults
    strategy_config: Optional[dict[str, Any]] = None


class AgentResponse(BaseModel):
    """Agent as returned by the API"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    strategy: StrategyType
    strategy_config: dict[str, Any] = Field(default_factory=dict)
    market_type: MarketType
    balance: float
    initial_balance: float
    risk_tolerance: int
    max_position_size: float
    trading_mode: TradingMode
    status: AgentStatus
    total_trades: int
    winning_trades: int
    total_profit: float
    error_count: int
    roi_percent: float
    last_action_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db(cls, agent: Any) -> "AgentResponse":
        return cls(
            id=str(agent.id),
            user_id=str(agent.user_id),
            name=agent.name,
            strategy=agent.strategy,
            strategy_config=agent.strategy_config or {},
            market_type=agent.market_type,
            balance=agent.balance,
            initial_balance=agent.initial_balance,
            risk_tolerance=agent.risk_tolerance,
            max_position_size=agent.max_position_size,
            trading_mode=agent.trading_mode,
            status=agent.status,
            total_trades=agent.total_trades,
            winning_trades=agent.winning_trades,
            total_profit=agent.total_profit,
            error_count=agent.error_count,
            roi_percent=round(agent.roi_percent, 4),
            last_action_at=agent.last_action_at,
            created_at=agent.created_at,
            updated_at=agent.updated_at,
        )


class TradeResponse(BaseModel):
    id: str
    agent_id: str
    symbol: str
    side: str
    quantity: float
    price: float
    total_amount: float
    status: str
    reasoning: Optional[str] = None
    realized_pnl: Optional[float] = None
    broker_order_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    executed_at: Optional[datetime] = None

    @classmethod
    def from_db(cls, trade: Any) -> "TradeResponse":
        return cls(
            id=str(trade.id),
            agent_id=str(trade.agent_id),
            symbol=trade.symbol,
            side=trade.side,
            quantity=trade.quantity,
            price=trade.price,
            total_amount=trade.total_amount,
            status=trade.status,
            reasoning=trade.reasoning,
            realized_pnl=trade.realized_pnl,
            broker_order_id=trade.broker_order_id,
            error_message=trade.error_message,
            created_at=trade.created_at,
            executed_at=trade.executed_at,
        )


class AgentActionResponse(BaseModel):
    id: str
    agent_id: str
    action_type: ActionKind
    action_data: dict[str, Any] = Field(default_factory=dict)
    reasoning: Optional[str] = None
    confidence_score: Optional[int] = None
    created_at: datetime

    @classmethod
    def from_db(cls, action: Any) -> "AgentActionResponse":
        return cls(
            id=str(action.id),
            agent_id=str(action.agent_id),
            action_type=action.action_type,
            action_data=action.action_data or {},
            reasoning=action.reasoning,
            confidence_score=action.confidence_score,
            created_at=action.created_at,
        )


class NotificationResponse(BaseModel):
    id: str
    agent_id: Optional[str] = None
    trade_id: Optional[str] = None
    type: str
    title: str
    message: str
    read: bool
    created_at: datetime

    @classmethod
    def from_db(cls, notification: Any) -> "NotificationResponse":
        return cls(
            id=str(notification.id),
            agent_id=str(notification.agent_id) if notification.agent_id else None,
            trade_id=str(notification.trade_id) if notification.trade_id else None,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            read=notification.read,
            created_at=notification.created_at,
        )
