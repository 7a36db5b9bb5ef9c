"""Tests for message formatting."""

from datetime import datetime
from zoneinfo import ZoneInfo

from taskpulse.bot.formatters import (
    format_instance_time,
    format_next_occurrence,
    format_notification,
    format_recurrence,
    format_upcoming,
)
from taskpulse.db.models import (
    Custom,
    Daily,
    EndAfterCount,
    EndOnDate,
    InstanceTimeConfig,
    Monthly,
    NoRecurrence,
    Weekly,
)

UTC = ZoneInfo("UTC")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def test_format_recurrence():
    """Test recurrence descriptions."""
    assert format_recurrence(NoRecurrence()) == "Does not repeat"
    assert format_recurrence(Daily()) == "Every day"
    assert format_recurrence(Daily(interval=3)) == "Every 3 days"
    assert format_recurrence(Weekly(weekdays=frozenset({3, 1}))) == "Every week on Mon, Wed"
    assert format_recurrence(Monthly(end=EndAfterCount(5))) == "Every month, 5 times"
    assert (
        format_recurrence(Daily(end=EndOnDate(utc(2025, 3, 1))))
        == "Every day, until Mar 01, 2025"
    )
    assert format_recurrence(Custom(rrule="FREQ=WEEKLY;BYDAY=TU")) == "Custom (FREQ=WEEKLY;BYDAY=TU)"


def test_format_instance_time():
    """Times are shown in the instance's own timezone."""
    timed = InstanceTimeConfig(scheduled_time=utc(2025, 1, 1, 9, 0), timezone="Europe/Berlin")
    ranged = InstanceTimeConfig(
        scheduled_time=utc(2025, 1, 1, 9, 0),
        end_time=utc(2025, 1, 1, 9, 30),
        type="timeRange",
    )
    all_day = InstanceTimeConfig(scheduled_time=utc(2025, 1, 1), type="allDay")

    assert format_instance_time(timed) == "Jan 01, 2025 10:00"
    assert format_instance_time(ranged) == "Jan 01, 2025 09:00 - 09:30"
    assert format_instance_time(all_day) == "Jan 01, 2025"


def test_format_next_occurrence():
    base = utc(2025, 1, 1, 9, 0)
    now = utc(2025, 1, 1, 8, 0)

    assert format_next_occurrence(Daily(), base, now) == "in 1 hour"
    assert format_next_occurrence(NoRecurrence(), base, utc(2025, 1, 2)) == "No upcoming occurrence"
    assert format_next_occurrence(Monthly(), base, base) == "Feb 01, 2025 09:00"


def test_format_next_occurrence_in_local_time():
    # 09:00 in New York
    base = utc(2025, 1, 1, 14, 0)

    assert format_next_occurrence(Monthly(), base, base, "America/New_York") == "Feb 01, 2025 09:00"


def test_format_notification_escapes_html():
    text = format_notification("Task reminder: <Deploy>", "R&D sync")

    assert text == "🔔 <b>Task reminder: &lt;Deploy&gt;</b>\n\nR&amp;D sync"


def test_format_upcoming():
    now = utc(2025, 1, 1, 8, 0)

    assert format_upcoming([], now) == "No reminders in the next hour."

    text = format_upcoming([("Standup", utc(2025, 1, 1, 8, 45))], now)
    assert "Upcoming reminders (1)" in text
    assert "Standup</b> in 45 minutes" in text
