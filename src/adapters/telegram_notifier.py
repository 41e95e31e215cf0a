"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol.
"""

from __future__ import annotations

import logging

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup

from src.ports.notification_port import Buttons

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(
        self, user_id: int, text: str, buttons: Buttons | None = None,
    ) -> int:
        reply_markup = None
        if buttons:
            reply_markup = InlineKeyboardMarkup([
                [InlineKeyboardButton(label, callback_data=data) for label, data in buttons]
            ])
        message = await self._bot.send_message(
            chat_id=user_id, text=text, parse_mode="Markdown", reply_markup=reply_markup,
        )
        return message.message_id

    async def delete_message(self, user_id: int, message_id: int) -> None:
        await self._bot.delete_message(chat_id=user_id, message_id=message_id)
        logger.debug("Deleted message %d for user %d", message_id, user_id)
