"""
Notification Service - In-app records plus external channel delivery.

Every notification is stored as a ``NotificationDB`` row for the agent's
owner. Configured external channels receive a copy:
- Telegram
- Discord
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import aiohttp
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..db.models import NotificationDB
from ..db.repositories.notification import NotificationRepository

logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """External notification channels"""
    TELEGRAM = "telegram"
    DISCORD = "discord"


class NotificationType(str, Enum):
    """Notification types"""
    TRADE_EXECUTED = "trade_executed"
    AGENT_STATUS = "agent_status"
    RISK_WARNING = "risk_warning"
    SYSTEM = "system"


@dataclass
class Notification:
    """Notification data"""
    type: NotificationType
    title: str
    message: str
    user_id: Optional[uuid.UUID] = None
    agent_id: Optional[uuid.UUID] = None
    trade_id: Optional[uuid.UUID] = None
    data: dict = field(default_factory=dict)
    priority: str = "normal"  # normal, high


def trade_executed_notification(
    user_id: uuid.UUID,
    agent_id: uuid.UUID,
    trade_id: uuid.UUID,
    side: str,
    quantity: float,
    symbol: str,
    price: float,
    agent_name: str = "",
) -> Notification:
    return Notification(
        type=NotificationType.TRADE_EXECUTED,
        title=f"{side.upper()} Order Executed",
        message=f"{side.upper()} {quantity:g} {symbol} @ ${price:.2f}",
        user_id=user_id,
        agent_id=agent_id,
        trade_id=trade_id,
        data={
            "Agent": agent_name,
            "Symbol": symbol,
            "Total": f"${quantity * price:,.2f}",
        },
    )


def fill_overdraft_notification(
    user_id: uuid.UUID,
    agent_id: uuid.UUID,
    trade_id: uuid.UUID,
    symbol: str,
    total: float,
    balance: float,
    agent_name: str = "",
) -> Notification:
    return Notification(
        type=NotificationType.RISK_WARNING,
        title="Fill Exceeded Agent Balance",
        message=(
            f"{symbol} fill of ${total:,.2f} exceeded the ${balance:,.2f} "
            "balance; the fill was settled and the balance is overdrawn."
        ),
        user_id=user_id,
        agent_id=agent_id,
        trade_id=trade_id,
        data={"Agent": agent_name, "Symbol": symbol},
        priority="high",
    )


def agent_paused_notification(
    user_id: uuid.UUID,
    agent_id: uuid.UUID,
    agent_name: str,
    last_error: Optional[str] = None,
) -> Notification:
    data = {"Agent": agent_name}
    if last_error:
        data["Last error"] = last_error[:200]
    return Notification(
        type=NotificationType.AGENT_STATUS,
        title="Agent Paused Due to Errors",
        message=(
            f'Agent "{agent_name}" has been automatically paused '
            "after multiple consecutive errors."
        ),
        user_id=user_id,
        agent_id=agent_id,
        data=data,
        priority="high",
    )


class NotificationProvider(ABC):
    """Abstract base class for external notification providers"""

    @abstractmethod
    async def send(self, notification: Notification) -> bool:
        """Send a notification. Returns False on delivery failure."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        pass


class TelegramProvider(NotificationProvider):
    """Telegram notification provider"""

    def __init__(self, bot_token: str, chat_id: str):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_url = f"https://api.telegram.org/bot{bot_token}"

    def is_configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def format_message(self, notification: Notification) -> str:
        emoji = self._get_emoji(notification.type)
        message = f"{emoji} *{notification.title}*\n\n{notification.message}"
        details = [
            f"• {key}: `{value}`"
            for key, value in notification.data.items()
            if value not in (None, "")
        ]
        if details:
            message += "\n\n" + "\n".join(details)
        return message

    async def send(self, notification: Notification) -> bool:
        if not self.is_configured():
            logger.warning("Telegram not configured, skipping notification")
            return False

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.api_url}/sendMessage",
                    json={
                        "chat_id": self.chat_id,
                        "text": self.format_message(notification),
                        "parse_mode": "Markdown",
                        "disable_web_page_preview": True,
                    },
                    timeout=aiohttp.ClientTimeout(total=10),
                ) as response:
                    if response.status == 200:
                        logger.info(f"Telegram notification sent: {notification.title}")
                        return True
                    error = await response.text()
                    logger.error(f"Telegram send failed: {error}")
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Telegram notification error: {e}")
            return False

    def _get_emoji(self, type: NotificationType) -> str:
        emoji_map = {
            NotificationType.TRADE_EXECUTED: "\U0001F4B0",
            NotificationType.AGENT_STATUS: "\U0001F4CA",
            NotificationType.RISK_WARNING: "⚠️",
            NotificationType.SYSTEM: "ℹ️",
        }
        return emoji_map.get(type, "\U0001F4E2")


class DiscordProvider(NotificationProvider):
    """Discord notification provider via webhook"""

    def __init__(self, webhook_url: str):
        self.webhook_url = webhook_url

    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    def build_embed(self, notification: Notification) -> dict:
        embed = {
            "title": notification.title,
            "description": notification.message,
            "color": self._get_color(notification.type, notification.priority),
            "footer": {"text": f"TradePilot • {notification.type.value}"},
        }
        fields = [
            {"name": key, "value": str(value), "inline": True}
            for key, value in notification.data.items()
            if value not in (None, "")
        ]
        if fields:
            embed["fields"] = fields
        return embed

    async def send(self, notification: Notification) -> bool:
        if not self.is_configured():
            logger.warning("Discord not configured, skipping notification")
            return False

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.webhook_url,
                    json={"embeds": [self.build_embed(notification)]},
                    timeout=aiohttp.ClientTimeout(total=10),
                ) as response:
                    if response.status in (200, 204):
                        logger.info(f"Discord notification sent: {notification.title}")
                        return True
                    error = await response.text()
                    logger.error(f"Discord send failed: {error}")
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Discord notification error: {e}")
            return False

    def _get_color(self, type: NotificationType, priority: str) -> int:
        if priority == "high":
            return 0xFF9900  # Orange

        color_map = {
            NotificationType.TRADE_EXECUTED: 0x57F287,  # Green
            NotificationType.AGENT_STATUS: 0x3498DB,  # Blue
            NotificationType.RISK_WARNING: 0xFEE75C,  # Yellow
            NotificationType.SYSTEM: 0x99AAB5,  # Gray
        }
        return color_map.get(type, 0x99AAB5)


class NotificationService:
    """
    Stores notifications and fans them out to external channels.

    ``record`` writes the in-app row inside the caller's transaction.
    ``dispatch`` delivers to external channels and should run after that
    transaction commits.

    Usage:
        service = NotificationService()
        service.configure(discord_webhook_url=...)
        await service.record(session, notification)
        await session.commit()
        await service.dispatch(notification)
    """

    def __init__(self):
        self.providers: dict[NotificationChannel, NotificationProvider] = {}

    def configure(
        self,
        telegram_bot_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        discord_webhook_url: Optional[str] = None,
    ) -> None:
        """Configure external providers"""
        if telegram_bot_token and telegram_chat_id:
            self.providers[NotificationChannel.TELEGRAM] = TelegramProvider(
                bot_token=telegram_bot_token,
                chat_id=telegram_chat_id,
            )
            logger.info("Telegram notifications enabled")

        if discord_webhook_url:
            self.providers[NotificationChannel.DISCORD] = DiscordProvider(
                webhook_url=discord_webhook_url,
            )
            logger.info("Discord notifications enabled")

    def is_any_configured(self) -> bool:
        return any(p.is_configured() for p in self.providers.values())

    async def record(
        self, session: AsyncSession, notification: Notification
    ) -> NotificationDB:
        """Write the in-app notification row (caller commits)."""
        if notification.user_id is None:
            raise ValueError("Notification requires a user_id to be stored")
        repo = NotificationRepository(session)
        return await repo.create(
            user_id=notification.user_id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            agent_id=notification.agent_id,
            trade_id=notification.trade_id,
        )

    async def dispatch(
        self,
        notification: Notification,
        channels: Optional[list[NotificationChannel]] = None,
    ) -> dict[NotificationChannel, bool]:
        """
        Deliver to the given channels (or all configured).

        Delivery failures are logged and reported, never raised.
        """
        targets = [
            (channel, self.providers[channel])
            for channel in (channels or list(self.providers.keys()))
            if channel in self.providers and self.providers[channel].is_configured()
        ]
        if not targets:
            return {}

        outcomes = await asyncio.gather(
            *(provider.send(notification) for _, provider in targets),
            return_exceptions=True,
        )
        results = {}
        for (channel, _), outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Error sending to {channel.value}: {outcome}")
                results[channel] = False
            else:
                results[channel] = bool(outcome)
        return results


# Global notification service instance
_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get or create the global notification service"""
    global _notification_service

    if _notification_service is None:
        _notification_service = NotificationService()
        settings = get_settings()
        _notification_service.configure(
            telegram_bot_token=settings.telegram_bot_token,
            telegram_chat_id=settings.telegram_chat_id,
            discord_webhook_url=settings.discord_webhook_url,
        )

    return _notification_service


def reset_notification_service() -> None:
    global _notification_service
    _notification_service = None
