"""
Pytest configuration and fixtures for TradePilot tests.
"""

from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tradepilot.core.config import Settings, get_settings
from tradepilot.db.models import AgentDB, Base
from tradepilot.db.repositories import AgentRepository
from tradepilot.models.decision import BuyDecision, HoldDecision, SellDecision
from tradepilot.models.market import Quote
from tradepilot.services.market_data import MarketDataGateway
from tradepilot.services.news import NullNewsGateway
from tradepilot.services.notifications import NotificationService
from tradepilot.traders import PaperTrader


# Use an in-memory SQLite database for tests.
# StaticPool keeps a single connection so every session sees the same data.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        anthropic_api_key="test-key",
        openai_api_key="",
        alpaca_api_key="",
        alpaca_api_secret="",
        news_api_key="",
        telegram_bot_token="",
        telegram_chat_id="",
        discord_webhook_url="",
        scheduler_enabled=False,
        synthetic_market_data=False,
        max_consecutive_errors=5,
        min_trade_confidence=70,
        allow_short_selling=False,
        settlement_max_retries=3,
    )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def make_agent(session_factory, user_id):
    """Factory that persists an agent and returns it (committed)."""

    async def _make(
        balance: float = 1000.0,
        max_position_size: float = 0.2,
        status: str = "active",
        error_count: int = 0,
        market_type: str = "stocks",
        strategy: str = "momentum",
        name: str = "Test Agent",
        owner: Optional[object] = None,
    ) -> AgentDB:
        async with session_factory() as session:
            repo = AgentRepository(session)
            agent = await repo.create(
                user_id=owner or user_id,
                name=name,
                strategy=strategy,
                initial_balance=balance,
                market_type=market_type,
                max_position_size=max_position_size,
            )
            agent.status = status
            agent.error_count = error_count
            await session.commit()
            await session.refresh(agent)
            return agent

    return _make


# ==================== Collaborator stand-ins ====================


class StaticMarketData(MarketDataGateway):
    """Returns fixed quotes, filtered to the requested symbols."""

    def __init__(self, prices: Optional[dict[str, float]] = None):
        self.prices = prices or {}
        self.calls: list[list[str]] = []

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        self.calls.append(list(symbols))
        return {
            symbol: Quote(symbol=symbol, price=price, bid=price, ask=price)
            for symbol, price in self.prices.items()
            if symbol in symbols
        }


def buy(symbol: str = "AAPL", confidence: int = 85, quantity: Optional[float] = None, reasoning: str = "Uptrend"):
    return BuyDecision(symbol=symbol, confidence=confidence, quantity=quantity, reasoning=reasoning)


def sell(symbol: str = "AAPL", confidence: int = 85, quantity: Optional[float] = None, reasoning: str = "Take profit"):
    return SellDecision(symbol=symbol, confidence=confidence, quantity=quantity, reasoning=reasoning)


def hold(confidence: int = 50, reasoning: str = "Sideways"):
    return HoldDecision(confidence=confidence, reasoning=reasoning)


@pytest.fixture
def market_data() -> StaticMarketData:
    return StaticMarketData({"AAPL": 50.0, "MSFT": 400.0})


@pytest.fixture
def decision_service():
    service = AsyncMock()
    service.get_decision = AsyncMock(return_value=hold())
    service.close = AsyncMock()
    return service


@pytest.fixture
def paper_trader() -> PaperTrader:
    return PaperTrader()


@pytest.fixture
def notification_service() -> NotificationService:
    service = NotificationService()
    service.dispatch = AsyncMock(return_value={})
    return service


@pytest.fixture
def orchestrator(
    session_factory,
    market_data,
    decision_service,
    paper_trader,
    notification_service,
    settings,
):
    from tradepilot.services.cycle_orchestrator import CycleOrchestrator

    return CycleOrchestrator(
        session_factory=session_factory,
        market_data=market_data,
        news=NullNewsGateway(),
        decision_service=decision_service,
        trader_factory=lambda agent: paper_trader,
        notifications=notification_service,
        settings=settings,
    )
