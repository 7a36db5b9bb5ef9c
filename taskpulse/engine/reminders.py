"""Reminder fire times and the text a fired reminder carries."""

from datetime import datetime, timedelta

from taskpulse.db.models import (
    AbsoluteTiming,
    AlertState,
    ReminderAlertConfig,
    RelativeTiming,
    TaskInstance,
)
from taskpulse.utils.time_utils import format_duration, from_utc, utc_now


def fire_time(alert_config: ReminderAlertConfig, anchor_time: datetime) -> datetime:
    """Compute when an alert should fire.

    - Absolute timing: the configured time, regardless of the anchor
    - Relative timing: `minutes_before` minutes ahead of the anchor
    - Anything else (no timing, zero lead): the anchor itself
    """
    timing = alert_config.timing

    if isinstance(timing, AbsoluteTiming) and timing.time is not None:
        return timing.time
    elif isinstance(timing, RelativeTiming) and timing.minutes_before:
        return anchor_time - timedelta(minutes=timing.minutes_before)

    return anchor_time


def is_anchored(alert_config: ReminderAlertConfig) -> bool:
    """Whether the alert's fire time follows the anchor when it moves."""
    return not isinstance(alert_config.timing, AbsoluteTiming)


def lead_minutes(anchor_time: datetime, fire_at: datetime) -> int:
    """Minutes between a reminder firing and the task it announces."""
    return round((anchor_time - fire_at).total_seconds() / 60)


def build_reminder_message(
    instance: TaskInstance,
    alert: AlertState,
    now: datetime | None = None,
) -> tuple[str, str]:
    """Build (title, body) for a fired alert.

    A custom message on the alert replaces the generated body.
    """
    if now is None:
        now = utc_now()

    title = f"Task reminder: {instance.title}"

    if alert.alert_config.message:
        return title, alert.alert_config.message

    start = instance.time_config.scheduled_time
    local_start = from_utc(start, instance.time_config.timezone)
    minutes = lead_minutes(start, now)

    if minutes > 0:
        body = f"{instance.title} starts in {format_duration(minutes)} ({local_start.strftime('%H:%M')})"
    else:
        body = f"{instance.title} starts now ({local_start.strftime('%H:%M')})"

    return title, body
