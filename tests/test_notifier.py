"""Tests for Telegram delivery and reminder keyboards."""

from types import SimpleNamespace

import pytest
from telegram.error import NetworkError

from taskpulse.bot.keyboards import reminder_keyboard
from taskpulse.bot.notifier import TelegramNotifier
from taskpulse.utils.errors import DeliveryError


class FakeBot:
    def __init__(self, error=None):
        self.error = error
        self.messages = []

    async def send_message(self, **kwargs):
        if self.error:
            raise self.error
        self.messages.append(kwargs)
        return SimpleNamespace(message_id=len(self.messages))


def callback_data(keyboard):
    return [button.callback_data for row in keyboard.inline_keyboard for button in row]


def test_reminder_keyboard():
    keyboard = reminder_keyboard("inst-1", "alert-15", snooze_minutes=5)

    assert callback_data(keyboard) == [
        "snooze:inst-1:alert-15:5",
        "dismiss:inst-1:alert-15",
        "done:inst-1",
    ]


def test_reminder_keyboard_without_snooze():
    keyboard = reminder_keyboard("inst-1", "alert-15")

    assert callback_data(keyboard) == ["dismiss:inst-1:alert-15", "done:inst-1"]


def test_reminder_keyboard_with_oversized_ids():
    assert reminder_keyboard("i" * 40, "a" * 30) is None


@pytest.mark.asyncio
async def test_notify_sends_html_with_buttons():
    bot = FakeBot()
    notifier = TelegramNotifier(bot, chat_id=42)

    result = await notifier.notify(
        "alert-15", "Task reminder: Standup", "Soon", instance_id="inst-1", snooze_minutes=20
    )

    assert result.delivered
    [message] = bot.messages
    assert message["chat_id"] == 42
    assert message["parse_mode"] == "HTML"
    assert "<b>Task reminder: Standup</b>" in message["text"]
    assert callback_data(message["reply_markup"])[0] == "snooze:inst-1:alert-15:20"


@pytest.mark.asyncio
async def test_notify_without_instance_has_no_buttons():
    bot = FakeBot()

    await TelegramNotifier(bot, chat_id=42).notify("alert-15", "Title", "Body")

    assert bot.messages[0]["reply_markup"] is None


@pytest.mark.asyncio
async def test_telegram_errors_become_failed_results():
    notifier = TelegramNotifier(FakeBot(error=NetworkError("connection reset")), chat_id=42)

    result = await notifier.notify("alert-15", "Title", "Body")

    assert not result.delivered
    assert "connection reset" in result.error


def test_chat_id_is_required():
    with pytest.raises(DeliveryError):
        TelegramNotifier(FakeBot(), chat_id="")
