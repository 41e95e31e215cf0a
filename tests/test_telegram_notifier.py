"""Tests for src.adapters.telegram_notifier."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram import InlineKeyboardMarkup

from src.adapters.telegram_notifier import TelegramNotifier


def _bot(message_id=900):
    bot = MagicMock()
    bot.send_message = AsyncMock(return_value=MagicMock(message_id=message_id))
    bot.delete_message = AsyncMock()
    return bot


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_send_plain(self):
        bot = _bot()
        assert await TelegramNotifier(bot).send_message(1, "hello") == 900
        bot.send_message.assert_awaited_once_with(
            chat_id=1, text="hello", parse_mode="Markdown", reply_markup=None,
        )

    @pytest.mark.asyncio
    async def test_send_with_buttons(self):
        bot = _bot()
        await TelegramNotifier(bot).send_message(1, "x", buttons=[("✅ Got it", "remind_ack:3")])

        markup = bot.send_message.call_args.kwargs["reply_markup"]
        assert isinstance(markup, InlineKeyboardMarkup)
        button = markup.inline_keyboard[0][0]
        assert button.text == "✅ Got it"
        assert button.callback_data == "remind_ack:3"

    @pytest.mark.asyncio
    async def test_delete(self):
        bot = _bot()
        await TelegramNotifier(bot).delete_message(1, 55)
        bot.delete_message.assert_awaited_once_with(chat_id=1, message_id=55)
