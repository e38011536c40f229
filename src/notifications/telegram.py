"""
HoloSwap Pricing — Telegram Price Alert Delivery

Sends price-alert messages to users who linked a Telegram chat. Anything
that can "send user N a message" satisfies the Notifier protocol; the price
monitor only depends on that.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Protocol

import structlog
import telegram.error
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from telegram import Bot

from src.config import settings
from src.models.watchlist import NotificationSettings

logger = structlog.get_logger(__name__)

TELEGRAM_CHANNEL = "telegram"

# MarkdownV2 requires escaping these characters outside of formatting contexts.
_MDV2_SPECIAL_CHARS: re.Pattern[str] = re.compile(
    r"([_\*\[\]\(\)~`>#\+\-=\|\{\}\.!])"
)


def _escape_mdv2(value: str) -> str:
    """Escape a plain string for safe embedding in a MarkdownV2 message."""
    return _MDV2_SPECIAL_CHARS.sub(r"\\\1", value)


class Notifier(Protocol):
    async def send_to_user(self, user_id: int, title: str, body: str) -> bool:
        ...


def format_price_alert(
    card_name: str,
    set_id: str,
    card_number: str,
    old_price: Decimal,
    new_price: Decimal,
) -> tuple[str, str]:
    """
    Plain-text title and body for a price move.

    Example:
        ("📈 Pikachu price up",
         "Pikachu (sv01 #1) is now £12.00 (+20.0% from £10.00)")
    """
    direction = "up" if new_price > old_price else "down"
    arrow = "📈" if direction == "up" else "📉"
    change = (new_price - old_price) / old_price * 100
    sign = "+" if direction == "up" else ""

    title = f"{arrow} {card_name} price {direction}"
    body = (
        f"{card_name} ({set_id} #{card_number}) is now £{new_price:.2f} "
        f"({sign}{change:.1f}% from £{old_price:.2f})"
    )
    return title, body


class TelegramNotifier:
    """
    Price alerts over the Telegram Bot API.

    Use as an async context manager to ensure the underlying Bot session
    is cleanly opened and closed:

        async with TelegramNotifier(session_factory) as notifier:
            await notifier.send_to_user(user_id, title, body)

    When bot_token is absent every send returns False and logs; nothing
    raises.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        bot_token: str | None = None,
    ) -> None:
        token = bot_token or settings.TELEGRAM_BOT_TOKEN
        self._session_factory = session_factory
        self._enabled = bool(token)
        self._bot: Bot | None = Bot(token=token) if self._enabled else None

        if not self._enabled:
            logger.warning(
                "telegram_notifier_disabled",
                reason="TELEGRAM_BOT_TOKEN is empty or not set",
            )

    async def __aenter__(self) -> TelegramNotifier:
        if self._bot is not None:
            await self._bot.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._bot is not None:
            await self._bot.__aexit__(exc_type, exc_val, exc_tb)

    async def chat_id_for(self, user_id: int) -> str | None:
        """The user's Telegram chat id, if they enabled the Telegram channel."""
        if self._session_factory is None:
            return None
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(NotificationSettings).where(NotificationSettings.user_id == user_id)
                )
                prefs = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("telegram_chat_lookup_failed", user_id=user_id, error=str(e))
            return None

        if prefs is None or TELEGRAM_CHANNEL not in (prefs.channels_enabled or []):
            return None
        return prefs.telegram_chat_id or None

    async def send_message(self, chat_id: int | str, title: str, body: str) -> bool:
        """
        Send one alert to a chat.

        Returns:
            True if the message was delivered, False otherwise.
        """
        if not self._enabled:
            return False

        text = f"*{_escape_mdv2(title)}*\n{_escape_mdv2(body)}"
        try:
            await self._bot.send_message(  # type: ignore[union-attr]
                chat_id=chat_id,
                text=text,
                parse_mode="MarkdownV2",
                disable_web_page_preview=True,
            )
        except telegram.error.TelegramError as exc:
            logger.error("price_alert_send_failed", chat_id=chat_id, error=str(exc))
            return False

        logger.info("price_alert_sent", chat_id=chat_id)
        return True

    async def send_to_user(self, user_id: int, title: str, body: str) -> bool:
        """Resolve the user's chat and send. False if they have no Telegram chat."""
        if not self._enabled:
            return False

        chat_id = await self.chat_id_for(user_id)
        if chat_id is None:
            logger.debug("telegram_no_chat_for_user", user_id=user_id)
            return False
        return await self.send_message(chat_id, title, body)
