"""Conversation handler for creating a task."""

import logging
import re
import uuid
from datetime import datetime, timedelta
from html import escape
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import (
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from taskpulse.bot.formatters import format_recurrence
from taskpulse.bot.keyboards import confirm_cancel_keyboard
from taskpulse.db.models import (
    BaseTime,
    RelativeTiming,
    ReminderAlertConfig,
    ReminderConfig,
    TaskTemplate,
)
from taskpulse.engine.recurrence import rule_from_text
from taskpulse.engine.service import TaskScheduleService
from taskpulse.utils.constants import DEFAULT_TIMEZONE
from taskpulse.utils.time_utils import format_duration, to_utc, utc_now

logger = logging.getLogger(__name__)

# Conversation states
TITLE, START, REPEAT, REMIND, CONFIRM = range(5)

LEAD_PATTERN = re.compile(r"^(\d+)\s*(m|min|mins|minutes?|h|hours?)?$")
SKIP_WORDS = ("skip", "no", "none", "0")


def parse_start_time(text: str, timezone: str, now: datetime | None = None) -> datetime:
    """Parse a start time typed by the user.

    Supports:
    - 14:30 (today, or tomorrow if that has passed)
    - tomorrow / tomorrow 14:30
    - in X minutes/hours/days
    - 2025-03-15 or 2025-03-15 14:30

    Returns:
        datetime in UTC (always timezone-aware)
    """
    if now is None:
        now = utc_now()

    text = text.strip().lower()
    now_local = now.astimezone(ZoneInfo(timezone))

    clock_match = re.fullmatch(r"(?:(tomorrow)\s*)?(?:(\d{1,2}):(\d{2}))?", text)
    if clock_match and text:
        tomorrow, hour, minute = clock_match.groups()
        hour = int(hour) if hour is not None else 9
        minute = int(minute) if minute is not None else 0
        if hour > 23 or minute > 59:
            raise ValueError(f"{text} is not a valid time of day")

        dt_local = now_local.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if tomorrow or dt_local <= now_local:
            dt_local += timedelta(days=1)
        return to_utc(dt_local, timezone)

    if text.startswith("in "):
        parts = text[3:].split()
        if len(parts) == 2 and parts[0].isdigit():
            value = int(parts[0])
            unit = parts[1]

            if unit in ("day", "days"):
                return now + timedelta(days=value)
            elif unit in ("hour", "hours"):
                return now + timedelta(hours=value)
            elif unit in ("minute", "minutes", "min", "mins"):
                return now + timedelta(minutes=value)
            raise ValueError(f"Unknown time unit: {unit}")

    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            dt = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if fmt == "%Y-%m-%d":
            dt = dt.replace(hour=9, minute=0)
        return to_utc(dt, timezone)

    raise ValueError(f"Couldn't understand the time: {text}")


def parse_lead_minutes(text: str) -> int | None:
    """Minutes before the start to remind, e.g. "15", "15m", "1h". None means no reminder."""
    text = text.strip().lower()
    if text in SKIP_WORDS:
        return None

    match = LEAD_PATTERN.fullmatch(text)
    if not match:
        raise ValueError(f"Couldn't understand {text!r}")

    value = int(match.group(1))
    unit = match.group(2) or "m"
    return value * 60 if unit.startswith("h") else value


def build_template(data: dict, timezone: str) -> TaskTemplate:
    """Draft template from the answers collected in the conversation."""
    minutes = data.get("lead_minutes")
    alerts = ()
    if minutes:
        alerts = (ReminderAlertConfig(id=f"alert-{minutes}", timing=RelativeTiming(minutes)),)

    return TaskTemplate(
        id=str(uuid.uuid4()),
        title=data["title"],
        base_time=BaseTime(start=data["start"]),
        recurrence=data["recurrence"],
        timezone=timezone,
        reminder_config=ReminderConfig(alerts=alerts),
    )


def _timezone(context: ContextTypes.DEFAULT_TYPE) -> str:
    return context.bot_data.get("timezone", DEFAULT_TIMEZONE)


async def add_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Start the /add conversation."""
    if not update.message:
        return ConversationHandler.END

    context.user_data["task_data"] = {}

    await update.message.reply_text(
        "<b>New task</b>\n\nWhat's the task called?\n\n"
        "Example: <i>Team standup</i>\n\n"
        "Send /cancel to abort.",
        parse_mode=ParseMode.HTML,
    )

    return TITLE


async def add_title(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive task title."""
    if not update.message or not update.message.text:
        return TITLE

    title = update.message.text.strip()

    if not title:
        await update.message.reply_text("Please enter a title.")
        return TITLE

    context.user_data["task_data"]["title"] = title

    await update.message.reply_text(
        f"<b>Title:</b> {escape(title)}\n\n"
        "When does it start?\n\n"
        "Examples:\n"
        "• <i>09:30</i>\n"
        "• <i>tomorrow 14:00</i>\n"
        "• <i>in 2 hours</i>\n"
        "• <i>2025-03-15 14:30</i>\n\n"
        "Send /cancel to abort.",
        parse_mode=ParseMode.HTML,
    )

    return START


async def add_start_time(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the first start time."""
    if not update.message or not update.message.text:
        return START

    timezone = _timezone(context)
    try:
        start = parse_start_time(update.message.text, timezone)
    except ValueError as e:
        await update.message.reply_text(f"{e}\n\nPlease try again or /cancel.")
        return START

    context.user_data["task_data"]["start"] = start

    start_local = start.astimezone(ZoneInfo(timezone))
    await update.message.reply_text(
        f"<b>Starts:</b> {start_local.strftime('%b %d, %Y at %H:%M')}\n\n"
        "Does it repeat?\n\n"
        "Examples:\n"
        "• <i>no</i>\n"
        "• <i>daily</i>\n"
        "• <i>every monday and thursday</i>\n"
        "• <i>every 2 weeks</i>\n"
        "• <i>every 15th</i>\n\n"
        "Send /cancel to abort.",
        parse_mode=ParseMode.HTML,
    )

    return REPEAT


async def add_repeat(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the recurrence."""
    if not update.message or not update.message.text:
        return REPEAT

    text = update.message.text.strip().lower()
    rule = rule_from_text("never" if text in ("no", "once") else text)

    if rule is None:
        await update.message.reply_text(
            "I didn't get that. Try <i>daily</i>, <i>weekly</i>, <i>every friday</i> or <i>no</i>.",
            parse_mode=ParseMode.HTML,
        )
        return REPEAT

    context.user_data["task_data"]["recurrence"] = rule

    await update.message.reply_text(
        f"<b>Repeats:</b> {format_recurrence(rule)}\n\n"
        "How long before the start should I remind you?\n\n"
        "Examples: <i>15</i>, <i>30m</i>, <i>1h</i>, <i>skip</i>",
        parse_mode=ParseMode.HTML,
    )

    return REMIND


async def add_remind(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the reminder lead time and show the confirmation."""
    if not update.message or not update.message.text:
        return REMIND

    try:
        minutes = parse_lead_minutes(update.message.text)
    except ValueError as e:
        await update.message.reply_text(f"{e}. Enter a number of minutes or 'skip'.")
        return REMIND

    data = context.user_data["task_data"]
    data["lead_minutes"] = minutes

    start_local = data["start"].astimezone(ZoneInfo(_timezone(context)))
    reminder = f"{format_duration(minutes)} before" if minutes else "None"
    message = (
        "<b>Confirm task</b>\n\n"
        f"<b>{escape(data['title'])}</b>\n"
        f"Starts: {start_local.strftime('%b %d, %Y at %H:%M')}\n"
        f"Repeats: {format_recurrence(data['recurrence'])}\n"
        f"Reminder: {reminder}\n\n"
        "Looks good?"
    )

    await update.message.reply_html(message, reply_markup=confirm_cancel_keyboard("add"))

    return CONFIRM


async def add_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle confirmation callback."""
    if not update.callback_query:
        return ConversationHandler.END

    query = update.callback_query

    # Answer first to stop the loading state
    await query.answer()

    if query.data == "confirm:add":
        data = context.user_data.get("task_data")

        if not data or "lead_minutes" not in data:
            if query.message:
                await query.message.edit_text("Session expired. Please use /add again.")
            context.user_data.clear()
            return ConversationHandler.END

        service: TaskScheduleService = context.bot_data["service"]
        template = build_template(data, _timezone(context))

        result = await service.create_template(template)
        if result.success:
            result = await service.activate_template(template.id)

        if query.message:
            if result.success:
                await query.message.edit_text(
                    f"✓ <b>Task created!</b>\n\n{escape(template.title)}: {result.message}\n\n"
                    "Use /tasks to see your tasks.",
                    parse_mode=ParseMode.HTML,
                )
            else:
                await query.message.edit_text(f"{result.message}\n\nPlease try /add again.")

    elif query.data == "cancel:add":
        if query.message:
            await query.message.edit_text("❌ Cancelled. Use /add to try again.")

    context.user_data.clear()

    return ConversationHandler.END


async def add_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Cancel the /add conversation."""
    if not update.message:
        return ConversationHandler.END

    await update.message.reply_text("Cancelled.")
    context.user_data.clear()

    return ConversationHandler.END


def build_add_conversation_handler() -> ConversationHandler:
    """Build the /add conversation handler."""
    text = filters.TEXT & ~filters.COMMAND

    return ConversationHandler(
        entry_points=[CommandHandler("add", add_start)],
        states={
            TITLE: [MessageHandler(text, add_title)],
            START: [MessageHandler(text, add_start_time)],
            REPEAT: [MessageHandler(text, add_repeat)],
            REMIND: [MessageHandler(text, add_remind)],
            CONFIRM: [CallbackQueryHandler(add_confirm, pattern=r"^(confirm|cancel):add$")],
        },
        fallbacks=[CommandHandler("cancel", add_cancel)],
        per_message=False,  # Track per conversation, not per message
        conversation_timeout=300,  # 5 minute timeout
    )
