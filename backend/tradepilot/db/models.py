"""
SQLAlchemy ORM Models

Database schema for the TradePilot agent platform.

- TradingAgent: configured trading identity with balance and risk settings
- Trade: executed or attempted order
- AgentAction: write-once audit log, one or more rows per cycle
- AgentPosition: per-agent holdings used for P&L and sell checks
- Notification: user-visible event (trade fills, auto-pause)
"""

import uuid
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AgentDB(Base):
    """
    Trading agent.

    Balance and counters are only mutated by the cycle orchestrator through
    AgentRepository, which bumps ``version`` on every write so concurrent
    read-modify-write cycles can detect stale state.
    """
    __tablename__ = "trading_agents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Strategy
    strategy: Mapped[str] = mapped_column(
        String(30),
        nullable=False
    )  # momentum, mean_reversion, sentiment, scalping, swing, arbitrage
    strategy_config: Mapped[dict] = mapped_column(JSON, default=dict)
    market_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="stocks"
    )  # stocks, crypto, both

    # Capital
    balance: Mapped[float] = mapped_column(Float, nullable=False)
    initial_balance: Mapped[float] = mapped_column(Float, nullable=False)

    # Risk configuration
    risk_tolerance: Mapped[int] = mapped_column(Integer, default=5)
    max_position_size: Mapped[float] = mapped_column(Float, default=0.2)
    trading_mode: Mapped[str] = mapped_column(
        String(10),
        default="paper"
    )  # paper, live

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        default="paused",
        index=True
    )  # active, paused, stopped

    # Counters
    total_trades: Mapped[int] = mapped_column(Integer, default=0)
    winning_trades: Mapped[int] = mapped_column(Integer, default=0)
    total_profit: Mapped[float] = mapped_column(Float, default=0.0)
    error_count: Mapped[int] = mapped_column(Integer, default=0)

    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_action_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False
    )

    trades: Mapped[list["TradeDB"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan"
    )
    actions: Mapped[list["AgentActionDB"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan"
    )
    positions: Mapped[list["AgentPositionDB"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan"
    )

    @property
    def roi_percent(self) -> float:
        if not self.initial_balance:
            return 0.0
        return (self.balance - self.initial_balance) / self.initial_balance * 100

    def __repr__(self) -> str:
        return f"<Agent {self.name} ({self.strategy}, {self.status})>"


class TradeDB(Base):
    """
    Executed or attempted order.

    Created as ``pending`` before the broker is called. The row id doubles
    as the idempotency key for settlement: balance moves only when the row
    transitions pending -> completed.
    """
    __tablename__ = "trades"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("trading_agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    side: Mapped[str] = mapped_column(String(4), nullable=False)  # buy, sell
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default="pending",
        index=True
    )  # pending, completed, failed, cancelled
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    realized_pnl: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    broker_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False
    )
    executed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    agent: Mapped["AgentDB"] = relationship(back_populates="trades")

    __table_args__ = (
        Index("ix_trades_agent_created", "agent_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Trade {self.side} {self.quantity} {self.symbol} ({self.status})>"


class AgentActionDB(Base):
    """Audit log entry. Write-once."""
    __tablename__ = "agent_actions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("trading_agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    action_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False
    )  # decision, trade, analysis, error, status_change
    action_data: Mapped[dict] = mapped_column(JSON, default=dict)
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confidence_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    market_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False
    )

    agent: Mapped["AgentDB"] = relationship(back_populates="actions")

    __table_args__ = (
        Index("ix_agent_actions_agent_created", "agent_id", "created_at"),
    )


class AgentPositionDB(Base):
    """Per-agent holding of one symbol."""
    __tablename__ = "agent_positions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("trading_agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    # Negative quantity represents a short position
    quantity: Mapped[float] = mapped_column(Float, default=0.0)
    average_price: Mapped[float] = mapped_column(Float, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False
    )

    agent: Mapped["AgentDB"] = relationship(back_populates="positions")

    __table_args__ = (
        UniqueConstraint("agent_id", "symbol", name="uq_agent_positions_agent_symbol"),
    )


class NotificationDB(Base):
    """User-visible notification"""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("trading_agents.id", ondelete="CASCADE"),
        nullable=True
    )
    trade_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("trades.id", ondelete="SET NULL"),
        nullable=True
    )
    type: Mapped[str] = mapped_column(
        String(30),
        nullable=False
    )  # trade_executed, agent_status, risk_warning, system
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False
    )
