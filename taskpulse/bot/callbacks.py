"""Callback query handlers for inline buttons."""

import logging
from datetime import timedelta
from html import escape

from telegram import Update
from telegram.ext import ContextTypes

from taskpulse.engine.service import TaskScheduleService

logger = logging.getLogger(__name__)


async def _finish(update: Update, text: str, answer: str) -> None:
    query = update.callback_query
    if query.message:
        await query.message.edit_text(text, parse_mode="HTML")
    await query.answer(answer)


async def callback_router(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Route button presses on reminder messages."""
    query = update.callback_query
    if not query or not query.data:
        return

    service: TaskScheduleService = context.bot_data["service"]
    action, _, payload = query.data.partition(":")

    if action == "snooze":
        instance_id, alert_id, minutes = payload.split(":")
        until = service.clock.now() + timedelta(minutes=int(minutes))
        result = await service.snooze_alert(instance_id, alert_id, until)
        if result.success:
            await _finish(update, f"⏸ {result.message}", "Snoozed")
        else:
            await query.answer(result.message)

    elif action == "dismiss":
        instance_id, alert_id = payload.split(":")
        result = await service.dismiss_alert(instance_id, alert_id)
        if result.success:
            await _finish(update, "🔕 Reminder dismissed", "Dismissed")
        else:
            await query.answer(result.message)

    elif action == "done":
        result = await service.complete_instance(payload)
        if result.success:
            await _finish(
                update, f"✓ <b>Completed:</b> <s>{escape(result.data.title)}</s>", "✓ Done!"
            )
        else:
            await query.answer(result.message)

    else:
        logger.warning(f"Unknown callback data: {query.data}")
        await query.answer()
