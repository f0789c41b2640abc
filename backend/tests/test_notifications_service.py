"""
Tests for NotificationService, TelegramProvider, DiscordProvider.

Covers: configure(), record(), dispatch(), message builders, error handling.
"""

import uuid

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from tradepilot.db.repositories import NotificationRepository
from tradepilot.services.notifications import (
    DiscordProvider,
    Notification,
    NotificationChannel,
    NotificationService,
    NotificationType,
    TelegramProvider,
    agent_paused_notification,
    get_notification_service,
    reset_notification_service,
    trade_executed_notification,
)


# ==================== Helpers ====================


def _make_notification(**kwargs) -> Notification:
    """Create a test notification with defaults."""
    defaults = {
        "type": NotificationType.SYSTEM,
        "title": "Test Title",
        "message": "Test message body",
        "priority": "normal",
    }
    defaults.update(kwargs)
    return Notification(**defaults)


def _mock_aiohttp_session(status: int = 200, text: str = "OK"):
    """Build a mock aiohttp ClientSession with nested async-context-manager support."""
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.text = AsyncMock(return_value=text)

    mock_post_cm = MagicMock()
    mock_post_cm.__aenter__ = AsyncMock(return_value=mock_response)
    mock_post_cm.__aexit__ = AsyncMock(return_value=False)

    mock_session = MagicMock()
    mock_session.post = MagicMock(return_value=mock_post_cm)

    mock_client_cm = MagicMock()
    mock_client_cm.__aenter__ = AsyncMock(return_value=mock_session)
    mock_client_cm.__aexit__ = AsyncMock(return_value=False)

    mock_client_cls = MagicMock(return_value=mock_client_cm)

    return mock_client_cls, mock_session, mock_response


# ==================== Message builders ====================


class TestMessageBuilders:

    def test_trade_executed(self):
        user_id, agent_id, trade_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

        notification = trade_executed_notification(
            user_id, agent_id, trade_id, "buy", 4, "AAPL", 50.0, agent_name="Momo"
        )

        assert notification.type == NotificationType.TRADE_EXECUTED
        assert notification.title == "BUY Order Executed"
        assert notification.message == "BUY 4 AAPL @ $50.00"
        assert notification.trade_id == trade_id
        assert notification.data["Total"] == "$200.00"

    def test_agent_paused(self):
        notification = agent_paused_notification(
            uuid.uuid4(), uuid.uuid4(), "Momo", last_error="x" * 500
        )

        assert notification.title == "Agent Paused Due to Errors"
        assert notification.message == (
            'Agent "Momo" has been automatically paused after multiple consecutive errors.'
        )
        assert notification.priority == "high"
        assert len(notification.data["Last error"]) == 200


# ==================== TelegramProvider ====================


class TestTelegramProvider:
    """Tests for TelegramProvider."""

    def test_is_configured(self):
        assert TelegramProvider(bot_token="tok123", chat_id="chat456").is_configured() is True
        assert TelegramProvider(bot_token="", chat_id="chat456").is_configured() is False
        assert TelegramProvider(bot_token="tok123", chat_id="").is_configured() is False

    def test_format_message_skips_empty_data(self):
        provider = TelegramProvider(bot_token="t", chat_id="c")
        notification = _make_notification(data={"Symbol": "AAPL", "Agent": ""})

        text = provider.format_message(notification)

        assert "*Test Title*" in text
        assert "Symbol: `AAPL`" in text
        assert "Agent" not in text

    @pytest.mark.asyncio
    async def test_send_success(self):
        provider = TelegramProvider(bot_token="tok", chat_id="cid")
        mock_client, mock_session, _ = _mock_aiohttp_session(status=200)

        with patch("tradepilot.services.notifications.aiohttp.ClientSession", mock_client):
            result = await provider.send(_make_notification())

        assert result is True
        url = mock_session.post.call_args.args[0]
        assert url == "https://api.telegram.org/bottok/sendMessage"
        assert mock_session.post.call_args.kwargs["json"]["chat_id"] == "cid"

    @pytest.mark.asyncio
    async def test_send_not_configured(self):
        provider = TelegramProvider(bot_token="", chat_id="")
        assert await provider.send(_make_notification()) is False

    @pytest.mark.asyncio
    async def test_send_http_error(self):
        provider = TelegramProvider(bot_token="tok", chat_id="cid")
        mock_client, _, _ = _mock_aiohttp_session(status=400, text="Bad Request")

        with patch("tradepilot.services.notifications.aiohttp.ClientSession", mock_client):
            result = await provider.send(_make_notification())

        assert result is False

    @pytest.mark.asyncio
    async def test_send_network_error(self):
        provider = TelegramProvider(bot_token="tok", chat_id="cid")
        mock_client = MagicMock()
        mock_client.return_value.__aenter__ = AsyncMock(
            side_effect=aiohttp.ClientConnectionError("refused")
        )
        mock_client.return_value.__aexit__ = AsyncMock(return_value=False)

        with patch("tradepilot.services.notifications.aiohttp.ClientSession", mock_client):
            result = await provider.send(_make_notification())

        assert result is False


# ==================== DiscordProvider ====================


class TestDiscordProvider:
    """Tests for DiscordProvider."""

    def test_build_embed(self):
        provider = DiscordProvider(webhook_url="https://discord.test/hook")
        notification = _make_notification(
            type=NotificationType.TRADE_EXECUTED,
            data={"Symbol": "AAPL", "Agent": None},
        )

        embed = provider.build_embed(notification)

        assert embed["title"] == "Test Title"
        assert embed["color"] == 0x57F287
        assert embed["fields"] == [{"name": "Symbol", "value": "AAPL", "inline": True}]

    def test_high_priority_color(self):
        provider = DiscordProvider(webhook_url="https://discord.test/hook")

        embed = provider.build_embed(_make_notification(priority="high"))

        assert embed["color"] == 0xFF9900
        assert "fields" not in embed

    @pytest.mark.asyncio
    async def test_send_accepts_204(self):
        provider = DiscordProvider(webhook_url="https://discord.test/hook")
        mock_client, mock_session, _ = _mock_aiohttp_session(status=204)

        with patch("tradepilot.services.notifications.aiohttp.ClientSession", mock_client):
            result = await provider.send(_make_notification())

        assert result is True
        assert "embeds" in mock_session.post.call_args.kwargs["json"]


# ==================== NotificationService ====================


class TestNotificationService:
    """Tests for NotificationService."""

    def test_configure_only_complete_providers(self):
        service = NotificationService()

        service.configure(telegram_bot_token="tok", telegram_chat_id="", discord_webhook_url="https://d/hook")

        assert list(service.providers) == [NotificationChannel.DISCORD]
        assert service.is_any_configured() is True

    def test_nothing_configured(self):
        service = NotificationService()
        service.configure()

        assert service.is_any_configured() is False

    @pytest.mark.asyncio
    async def test_dispatch_without_providers(self):
        assert await NotificationService().dispatch(_make_notification()) == {}

    @pytest.mark.asyncio
    async def test_dispatch_reports_failures_without_raising(self):
        service = NotificationService()
        service.configure(
            telegram_bot_token="tok", telegram_chat_id="cid", discord_webhook_url="https://d/hook"
        )
        service.providers[NotificationChannel.TELEGRAM].send = AsyncMock(return_value=True)
        service.providers[NotificationChannel.DISCORD].send = AsyncMock(
            side_effect=RuntimeError("webhook exploded")
        )

        results = await service.dispatch(_make_notification())

        assert results == {
            NotificationChannel.TELEGRAM: True,
            NotificationChannel.DISCORD: False,
        }

    @pytest.mark.asyncio
    async def test_dispatch_to_selected_channel(self):
        service = NotificationService()
        service.configure(
            telegram_bot_token="tok", telegram_chat_id="cid", discord_webhook_url="https://d/hook"
        )
        for provider in service.providers.values():
            provider.send = AsyncMock(return_value=True)

        results = await service.dispatch(_make_notification(), channels=[NotificationChannel.DISCORD])

        assert results == {NotificationChannel.DISCORD: True}
        service.providers[NotificationChannel.TELEGRAM].send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_record_writes_row(self, db_session, user_id):
        service = NotificationService()
        notification = agent_paused_notification(user_id, uuid.uuid4(), "Momo")

        row = await service.record(db_session, notification)
        await db_session.commit()

        repo = NotificationRepository(db_session)
        stored = await repo.get_by_user(user_id)
        assert [n.id for n in stored] == [row.id]
        assert stored[0].type == "agent_status"
        assert stored[0].read is False
        assert await repo.count_unread(user_id) == 1

    @pytest.mark.asyncio
    async def test_record_requires_user(self, db_session):
        with pytest.raises(ValueError):
            await NotificationService().record(db_session, _make_notification())

    def test_global_service_uses_settings(self, monkeypatch):
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://d/hook")
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "")
        reset_notification_service()
        try:
            service = get_notification_service()
            assert service is get_notification_service()
            assert NotificationChannel.DISCORD in service.providers
        finally:
            reset_notification_service()
