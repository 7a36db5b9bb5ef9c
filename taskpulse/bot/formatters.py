"""Message text formatters."""

from datetime import datetime
from html import escape

from taskpulse.db.models import (
    Custom,
    Daily,
    EndAfterCount,
    EndOnDate,
    InstanceTimeConfig,
    Monthly,
    NoRecurrence,
    RecurrenceRule,
    Weekly,
    Yearly,
)
from taskpulse.engine.recurrence import next_occurrence
from taskpulse.utils.constants import WEEKDAY_SHORT_NAMES
from taskpulse.utils.time_utils import format_relative_time, from_utc, utc_now


def _every(interval: int, unit: str) -> str:
    if interval == 1:
        return f"Every {unit}"
    return f"Every {interval} {unit}s"


def format_recurrence(rule: RecurrenceRule) -> str:
    """Describe a recurrence rule in plain English.

    Examples:
        NoRecurrence() -> "Does not repeat"
        Daily(interval=3) -> "Every 3 days"
        Weekly(weekdays={1, 3}) -> "Every week on Mon, Wed"
        Monthly(end=EndAfterCount(5)) -> "Every month, 5 times"
    """
    if isinstance(rule, NoRecurrence):
        return "Does not repeat"

    if isinstance(rule, Daily):
        text = _every(rule.interval, "day")
    elif isinstance(rule, Weekly):
        text = _every(rule.interval, "week")
        if rule.weekdays:
            days = ", ".join(WEEKDAY_SHORT_NAMES[d] for d in sorted(rule.weekdays))
            text += f" on {days}"
    elif isinstance(rule, Monthly):
        text = _every(rule.interval, "month")
    elif isinstance(rule, Yearly):
        text = _every(rule.interval, "year")
    elif isinstance(rule, Custom):
        text = f"Custom ({rule.rrule})"
    else:
        return "Unknown recurrence"

    if isinstance(rule.end, EndOnDate):
        text += f", until {rule.end.date.strftime('%b %d, %Y')}"
    elif isinstance(rule.end, EndAfterCount):
        times = "time" if rule.end.count == 1 else "times"
        text += f", {rule.end.count} {times}"

    return text


def format_instance_time(time_config: InstanceTimeConfig) -> str:
    """Format an instance's slot in its own timezone."""
    start = from_utc(time_config.scheduled_time, time_config.timezone)

    if time_config.type == "allDay":
        return start.strftime("%b %d, %Y")

    if time_config.type == "timeRange" and time_config.end_time is not None:
        end = from_utc(time_config.end_time, time_config.timezone)
        if end.date() == start.date():
            return f"{start.strftime('%b %d, %Y %H:%M')} - {end.strftime('%H:%M')}"
        return f"{start.strftime('%b %d, %Y %H:%M')} - {end.strftime('%b %d, %Y %H:%M')}"

    return start.strftime("%b %d, %Y %H:%M")


def format_next_occurrence(
    rule: RecurrenceRule,
    base_time: datetime,
    now: datetime | None = None,
    timezone: str = "UTC",
) -> str:
    """Describe when a template fires next, relative to now within a week."""
    if now is None:
        now = utc_now()

    upcoming = next_occurrence(rule, base_time, now, timezone)
    if upcoming is None:
        return "No upcoming occurrence"

    if (upcoming - now).days >= 7:
        return from_utc(upcoming, timezone).strftime("%b %d, %Y %H:%M")
    return format_relative_time(upcoming, now)


def format_notification(title: str, body: str) -> str:
    """Format a reminder for Telegram (HTML parse mode)."""
    return f"🔔 <b>{escape(title)}</b>\n\n{escape(body)}"


def format_upcoming(items: list[tuple[str, datetime]], now: datetime | None = None) -> str:
    """Format (title, fire time) pairs for the upcoming reminders preview."""
    if not items:
        return "No reminders in the next hour."

    lines = [f"<b>Upcoming reminders ({len(items)})</b>\n"]
    for title, fire_at in items:
        lines.append(f"🔔 <b>{escape(title)}</b> {format_relative_time(fire_at, now)}")

    return "\n".join(lines)
