"""
Tests for API endpoints.

Requests go through the real routers and repositories against the
in-memory database; the scheduler is replaced with a recording stand-in.
"""

import uuid
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tradepilot.api.main import create_app
from tradepilot.core.config import get_settings
from tradepilot.core.dependencies import get_agent_scheduler
from tradepilot.db.database import get_db
from tradepilot.db.repositories import (
    AgentActionRepository,
    NotificationRepository,
    TradeRepository,
)
from tradepilot.services.cycle_orchestrator import CycleOutcome, CycleResult


class FakeScheduler:
    """Records scheduler calls made by the routes."""

    def __init__(self):
        self.started: list[tuple[uuid.UUID, Optional[int]]] = []
        self.stopped: list[uuid.UUID] = []
        self.triggered: list[uuid.UUID] = []

    def start_agent(self, agent_id: uuid.UUID, interval_seconds: Optional[int] = None) -> bool:
        self.started.append((agent_id, interval_seconds))
        return True

    def stop_agent(self, agent_id: uuid.UUID) -> bool:
        self.stopped.append(agent_id)
        return True

    async def trigger(self, agent_id: uuid.UUID) -> CycleResult:
        self.triggered.append(agent_id)
        return CycleResult(
            agent_id=agent_id,
            outcome=CycleOutcome.HOLD,
            decision={"action": "hold", "confidence": 40, "reasoning": "Flat"},
        )


@pytest.fixture
def fake_scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest_asyncio.fixture
async def client(session_factory, settings, fake_scheduler) -> AsyncGenerator[AsyncClient, None]:
    app = create_app()

    async def _get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    settings.scheduler_enabled = True
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_agent_scheduler] = lambda: fake_scheduler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def headers(user_id) -> dict:
    return {"X-User-Id": str(user_id)}


AGENT_PAYLOAD = {
    "name": "Momentum Bot",
    "strategy": "momentum",
    "market_type": "stocks",
    "initial_balance": 10000,
    "max_position_size": 0.1,
}


async def _create_agent(client: AsyncClient, headers: dict, **overrides) -> dict:
    response = await client.post("/api/v1/agents", json={**AGENT_PAYLOAD, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# ============================================================================
# Identity
# ============================================================================


class TestIdentity:

    @pytest.mark.asyncio
    async def test_missing_user_header(self, client):
        response = await client.get("/api/v1/agents")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "AUTHZ_MISSING_USER"

    @pytest.mark.asyncio
    async def test_malformed_user_header(self, client):
        response = await client.get("/api/v1/agents", headers={"X-User-Id": "not-a-uuid"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_agents_scoped_to_owner(self, client, headers):
        agent = await _create_agent(client, headers)
        stranger = {"X-User-Id": str(uuid.uuid4())}

        response = await client.get(f"/api/v1/agents/{agent['id']}", headers=stranger)
        listing = await client.get("/api/v1/agents", headers=stranger)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "AGENT_NOT_FOUND"
        assert listing.json() == []


# ============================================================================
# Agent CRUD
# ============================================================================


class TestAgentCrud:

    @pytest.mark.asyncio
    async def test_create_agent(self, client, headers, user_id):
        data = await _create_agent(client, headers, strategy_config={"timeframe": "medium"})

        assert data["status"] == "paused"
        assert data["balance"] == 10000
        assert data["user_id"] == str(user_id)
        assert data["trading_mode"] == "paper"
        assert data["strategy_config"]["timeframe"] == "medium"
        assert "indicators" in data["strategy_config"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"strategy": "astrology"},
            {"initial_balance": 0},
            {"max_position_size": 1.5},
            {"name": ""},
        ],
    )
    async def test_create_agent_validation(self, client, headers, overrides):
        response = await client.post("/api/v1/agents", json={**AGENT_PAYLOAD, **overrides}, headers=headers)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_agents_status_filter(self, client, headers):
        first = await _create_agent(client, headers, name="First")
        await _create_agent(client, headers, name="Second")
        await client.post(f"/api/v1/agents/{first['id']}/activate", headers=headers)

        active = await client.get("/api/v1/agents", params={"status": "active"}, headers=headers)
        everything = await client.get("/api/v1/agents", headers=headers)

        assert [a["id"] for a in active.json()] == [first["id"]]
        assert len(everything.json()) == 2


# ============================================================================
# Status control
# ============================================================================


class TestStatusControl:

    @pytest.mark.asyncio
    async def test_activate_starts_timer(self, client, headers, fake_scheduler, settings):
        agent = await _create_agent(client, headers)

        response = await client.post(f"/api/v1/agents/{agent['id']}/activate", headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "active"
        assert fake_scheduler.started == [
            (uuid.UUID(agent["id"]), settings.scheduler_interval_seconds)
        ]

    @pytest.mark.asyncio
    async def test_activate_manual_mode_interval(self, client, headers, fake_scheduler, settings):
        agent = await _create_agent(client, headers)

        await client.post(
            f"/api/v1/agents/{agent['id']}/activate", params={"mode": "manual"}, headers=headers
        )

        assert fake_scheduler.started[0][1] == settings.manual_interval_seconds

    @pytest.mark.asyncio
    async def test_activate_without_scheduler(self, client, headers, fake_scheduler, settings):
        settings.scheduler_enabled = False
        agent = await _create_agent(client, headers)

        response = await client.post(f"/api/v1/agents/{agent['id']}/activate", headers=headers)

        assert response.json()["status"] == "active"
        assert fake_scheduler.started == []

    @pytest.mark.asyncio
    async def test_activate_resets_error_count(self, client, headers, make_agent, user_id):
        agent = await make_agent(status="paused", error_count=5, owner=user_id)

        response = await client.post(f"/api/v1/agents/{agent.id}/activate", headers=headers)

        assert response.json()["error_count"] == 0

    @pytest.mark.asyncio
    async def test_pause_and_stop(self, client, headers, fake_scheduler):
        agent = await _create_agent(client, headers)
        await client.post(f"/api/v1/agents/{agent['id']}/activate", headers=headers)

        paused = await client.post(f"/api/v1/agents/{agent['id']}/pause", headers=headers)
        stopped = await client.post(f"/api/v1/agents/{agent['id']}/stop", headers=headers)

        assert paused.json()["status"] == "paused"
        assert stopped.json()["status"] == "stopped"
        assert fake_scheduler.stopped == [uuid.UUID(agent["id"])] * 2

    @pytest.mark.asyncio
    async def test_pause_stopped_agent_conflict(self, client, headers):
        agent = await _create_agent(client, headers)
        await client.post(f"/api/v1/agents/{agent['id']}/stop", headers=headers)

        response = await client.post(f"/api/v1/agents/{agent['id']}/pause", headers=headers)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "INVALID_STATE"

    @pytest.mark.asyncio
    async def test_activate_unknown_agent(self, client, headers, fake_scheduler):
        response = await client.post(f"/api/v1/agents/{uuid.uuid4()}/activate", headers=headers)

        assert response.status_code == 404
        assert fake_scheduler.started == []

    @pytest.mark.asyncio
    async def test_run_now(self, client, headers, fake_scheduler):
        agent = await _create_agent(client, headers)

        response = await client.post(f"/api/v1/agents/{agent['id']}/run", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "hold"
        assert body["decision"]["action"] == "hold"
        assert fake_scheduler.triggered == [uuid.UUID(agent["id"])]


# ============================================================================
# History
# ============================================================================


class TestHistory:

    @pytest.mark.asyncio
    async def test_trades_and_actions(self, client, headers, make_agent, session_factory, user_id):
        agent = await make_agent(owner=user_id)
        async with session_factory() as session:
            await TradeRepository(session).create(
                agent_id=agent.id, user_id=user_id, symbol="AAPL", side="buy", quantity=4, price=50.0
            )
            actions = AgentActionRepository(session)
            await actions.log(agent.id, user_id, "analysis", {"action": "hold"})
            await actions.log(agent.id, user_id, "error", {"code": "NEWS_ERROR"})
            await session.commit()

        trades = await client.get(f"/api/v1/agents/{agent.id}/trades", headers=headers)
        errors = await client.get(
            f"/api/v1/agents/{agent.id}/actions", params={"action_type": "error"}, headers=headers
        )

        assert [t["symbol"] for t in trades.json()] == ["AAPL"]
        assert trades.json()[0]["status"] == "pending"
        assert [a["action_type"] for a in errors.json()] == ["error"]


# ============================================================================
# Notifications
# ============================================================================


class TestNotifications:

    @pytest.mark.asyncio
    async def test_list_and_mark_read(self, client, headers, session_factory, user_id):
        async with session_factory() as session:
            notification = await NotificationRepository(session).create(
                user_id, "agent_status", "Agent Paused Due to Errors", "Paused"
            )
            await session.commit()

        listing = await client.get("/api/v1/notifications", headers=headers)
        marked = await client.post(f"/api/v1/notifications/{notification.id}/read", headers=headers)
        after = await client.get("/api/v1/notifications", params={"unread_only": True}, headers=headers)

        assert listing.json()["unread_count"] == 1
        assert listing.json()["items"][0]["title"] == "Agent Paused Due to Errors"
        assert marked.json() == {"id": str(notification.id), "read": True}
        assert after.json() == {"items": [], "unread_count": 0}

    @pytest.mark.asyncio
    async def test_mark_read_unknown(self, client, headers):
        response = await client.post(f"/api/v1/notifications/{uuid.uuid4()}/read", headers=headers)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_channel_status(self, client, headers, monkeypatch):
        from tradepilot.services import notifications as notifications_module

        service = notifications_module.NotificationService()
        service.configure(discord_webhook_url="https://discord.test/hook")
        monkeypatch.setattr(notifications_module, "_notification_service", service)

        response = await client.get("/api/v1/notifications/channels", headers=headers)

        assert response.json() == {"enabled": True, "configured_channels": ["discord"]}


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client, monkeypatch):
        monkeypatch.setattr("tradepilot.workers.scheduler._scheduler", None)

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["scheduler_running"] is False
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestCors:

    @pytest.mark.asyncio
    async def test_preflight_allows_configured_origin(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3000, https://app.example.com")
        get_settings.cache_clear()
        app = create_app()

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            allowed = await ac.options(
                "/api/v1/agents",
                headers={
                    "Origin": "https://app.example.com",
                    "Access-Control-Request-Method": "POST",
                    "Access-Control-Request-Headers": "X-User-Id",
                },
            )
            denied = await ac.options(
                "/api/v1/agents",
                headers={
                    "Origin": "https://evil.example.com",
                    "Access-Control-Request-Method": "POST",
                },
            )

        assert allowed.status_code == 200
        assert allowed.headers["access-control-allow-origin"] == "https://app.example.com"
        assert "access-control-allow-origin" not in denied.headers
