"""Telegram messaging adapter — implements MessagingPort.

Wraps a telegram.Bot instance to satisfy the MessagingPort protocol, and
turns raw webhook update bodies into CallbackEvents.
"""

from __future__ import annotations

import logging
from typing import Any

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import TelegramError

from touchbase.data.models import CallbackEvent
from touchbase.ports.messaging_port import Control, MessagingError

logger = logging.getLogger(__name__)


def build_keyboard(controls: list[Control]) -> InlineKeyboardMarkup:
    """One button per row, in the order given."""
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton(c.label, callback_data=c.payload)] for c in controls]
    )


def event_from_update(body: Any) -> CallbackEvent | None:
    """Extract a CallbackEvent from a Telegram update body.

    Returns None for anything that is not a callback query (health checks,
    plain messages, junk). Missing fields inside a callback query are left
    as None for the handler to reject.
    """
    if not isinstance(body, dict):
        return None
    query = body.get("callback_query")
    if not isinstance(query, dict):
        return None

    sender = query.get("from") or {}
    message = query.get("message") or {}
    chat = message.get("chat") or {}

    return CallbackEvent(
        callback_id=query.get("id"),
        chat_id=chat.get("id") or sender.get("id"),
        payload=query.get("data"),
        user_id=sender.get("id"),
    )


class TelegramGateway:
    """Telegram implementation of MessagingPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(
        self,
        destination: int | str,
        text: str,
        controls: list[Control] | None = None,
        markdown: bool = False,
    ) -> None:
        try:
            await self._bot.send_message(
                chat_id=destination,
                text=text,
                parse_mode=ParseMode.MARKDOWN if markdown else None,
                reply_markup=build_keyboard(controls) if controls else None,
            )
        except TelegramError as exc:
            logger.error("Telegram sendMessage to %s failed: %s", destination, exc)
            raise MessagingError(f"Failed to send message: {exc}") from exc

    async def ack_control(self, callback_id: str, text: str = "") -> None:
        try:
            await self._bot.answer_callback_query(
                callback_query_id=callback_id, text=text or None, show_alert=False,
            )
        except TelegramError as exc:
            raise MessagingError(f"Failed to answer callback query: {exc}") from exc
