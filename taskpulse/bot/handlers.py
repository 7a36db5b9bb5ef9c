"""Command handlers."""

import logging
from html import escape

from telegram import Update
from telegram.ext import ContextTypes

from taskpulse.bot.formatters import (
    format_instance_time,
    format_next_occurrence,
    format_recurrence,
    format_upcoming,
)
from taskpulse.engine.service import TaskScheduleService

logger = logging.getLogger(__name__)

NEXT_LIMIT = 5

HELP_TEXT = """
<b>TaskPulse</b>

I send a reminder before each of your scheduled tasks.

/add - Create a task
/tasks - Your active and paused tasks
/next - The next few scheduled tasks
/upcoming [minutes] - Reminders due soon (default: next hour)
/help - This message

Use the buttons on a reminder to snooze it, dismiss it or mark the task done.
""".strip()


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start and /help."""
    if not update.message:
        return

    await update.message.reply_html(HELP_TEXT)


async def upcoming_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /upcoming [minutes] - preview armed reminders."""
    if not update.message:
        return

    minutes = 60
    if context.args:
        try:
            minutes = int(context.args[0])
        except ValueError:
            await update.message.reply_text("Usage: /upcoming [minutes]")
            return

    service: TaskScheduleService = context.bot_data["service"]
    reminders = service.scheduler.upcoming(minutes)

    items = []
    for reminder in reminders:
        instance = await service.repository.get_instance(reminder.instance_id)
        if instance is not None:
            items.append((instance.title, reminder.fire_time))

    await update.message.reply_html(format_upcoming(items, service.clock.now()))


async def tasks_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tasks - list active and paused templates."""
    if not update.message:
        return

    service: TaskScheduleService = context.bot_data["service"]
    now = service.clock.now()

    templates = [
        t for t in await service.repository.list_templates() if t.status in ("active", "paused")
    ]
    if not templates:
        await update.message.reply_text("No tasks yet. Use /add to create one.")
        return

    lines = [f"<b>Your tasks ({len(templates)})</b>\n"]
    for template in templates:
        status = " (paused)" if template.status == "paused" else ""
        lines.append(f"• <b>{escape(template.title)}</b>{status}")
        lines.append(f"  {format_recurrence(template.recurrence)}")
        if template.status == "active":
            upcoming = format_next_occurrence(
                template.recurrence, template.base_time.start, now, template.timezone
            )
            lines.append(f"  Next: {upcoming}")

    await update.message.reply_html("\n".join(lines))


async def next_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /next - the next scheduled instances."""
    if not update.message:
        return

    service: TaskScheduleService = context.bot_data["service"]
    now = service.clock.now()

    instances = [
        i
        for i in await service.repository.list_instances(("pending", "inProgress"))
        if i.scheduled_time >= now or i.status == "inProgress"
    ][:NEXT_LIMIT]

    if not instances:
        await update.message.reply_text("Nothing scheduled.")
        return

    lines = ["<b>Coming up</b>\n"]
    for instance in instances:
        marker = "▶️" if instance.status == "inProgress" else "•"
        lines.append(
            f"{marker} <b>{escape(instance.title)}</b> - {format_instance_time(instance.time_config)}"
        )

    await update.message.reply_html("\n".join(lines))
