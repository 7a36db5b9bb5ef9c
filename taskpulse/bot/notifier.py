"""Telegram delivery of fired reminders."""

import logging

from telegram import Bot
from telegram.error import TelegramError

from taskpulse.bot.formatters import format_notification
from taskpulse.bot.keyboards import reminder_keyboard
from taskpulse.ports import NotifyResult
from taskpulse.utils.errors import DeliveryError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Sends reminders to one chat."""

    def __init__(self, bot: Bot, chat_id: int | str):
        if not chat_id:
            raise DeliveryError("a chat id is required to deliver reminders")
        self.bot = bot
        self.chat_id = chat_id

    async def notify(
        self,
        alert_id: str,
        title: str,
        body: str,
        instance_id: str | None = None,
        snooze_minutes: int | None = None,
    ) -> NotifyResult:
        keyboard = None
        if instance_id is not None:
            keyboard = reminder_keyboard(instance_id, alert_id, snooze_minutes)

        try:
            sent_message = await self.bot.send_message(
                chat_id=self.chat_id,
                text=format_notification(title, body),
                parse_mode="HTML",
                reply_markup=keyboard,
            )
        except TelegramError as e:
            logger.error(f"Failed to send reminder {alert_id}: {e}")
            return NotifyResult(delivered=False, error=str(e))

        logger.debug(f"Reminder {alert_id} sent as message {sent_message.message_id}")
        return NotifyResult(delivered=True)
