"""Reminder alert state machine.

Per alert:

    pending   --trigger-->  triggered
    snoozed   --trigger-->  triggered   (snooze expired)
    triggered --snooze-->   snoozed
    snoozed   --snooze-->   snoozed     (up to snooze.max_count)
    triggered --dismiss-->  dismissed
    snoozed   --dismiss-->  dismissed

Every command returns True if it changed state. Requests that don't apply to
the current state are ignored, never raised, so repeated or late commands
are harmless.
"""

import logging
from datetime import datetime
from typing import Iterable

from taskpulse.db.models import AlertState, ReminderAlertConfig, SnoozeRecord, TaskInstance
from taskpulse.engine.reminders import fire_time, is_anchored
from taskpulse.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


def build_alert_states(
    alert_configs: Iterable[ReminderAlertConfig], anchor_time: datetime
) -> list[AlertState]:
    """Create fresh pending alert states for an anchor time."""
    return [
        AlertState(
            id=config.id,
            alert_config=config,
            scheduled_time=fire_time(config, anchor_time),
        )
        for config in alert_configs
    ]


def trigger(instance: TaskInstance, alert_id: str, now: datetime | None = None) -> bool:
    """Mark an alert as fired."""
    if now is None:
        now = utc_now()

    alert = instance.find_alert(alert_id)
    if alert is None or alert.status not in ("pending", "snoozed"):
        return False

    alert.status = "triggered"
    alert.triggered_at = now
    instance.reminder_status.last_triggered_at = now
    instance.log_event(
        "reminder_triggered", now, alert_id, alert_type=alert.alert_config.type
    )
    return True


def can_snooze(instance: TaskInstance, alert: AlertState) -> bool:
    snooze = instance.reminder_status.snooze
    if not snooze.enabled:
        return False
    if alert.status not in ("triggered", "snoozed"):
        return False
    return len(alert.snooze_history) < snooze.max_count


def snooze(
    instance: TaskInstance,
    alert_id: str,
    until: datetime,
    reason: str | None = None,
    now: datetime | None = None,
) -> bool:
    """Push a fired alert back to `until`.

    Ignored when snoozing is disabled for the instance or the alert has
    already used up its `max_count` snoozes.
    """
    if now is None:
        now = utc_now()

    alert = instance.find_alert(alert_id)
    if alert is None or not can_snooze(instance, alert):
        if alert is not None and alert.status in ("triggered", "snoozed"):
            logger.info(
                f"Snooze ignored for alert {alert_id} on instance {instance.id} "
                f"({len(alert.snooze_history)} snoozes used)"
            )
        return False

    alert.status = "snoozed"
    alert.scheduled_time = until
    alert.snooze_history.append(
        SnoozeRecord(snoozed_at=now, snooze_until=until, reason=reason)
    )
    instance.reminder_status.global_snooze_count += 1
    instance.log_event(
        "reminder_snoozed",
        now,
        alert_id,
        snooze_until=until.isoformat(),
        reason=reason,
    )
    return True


def dismiss(instance: TaskInstance, alert_id: str, now: datetime | None = None) -> bool:
    """Close an alert for good."""
    if now is None:
        now = utc_now()

    alert = instance.find_alert(alert_id)
    if alert is None or alert.status not in ("triggered", "snoozed"):
        return False

    alert.status = "dismissed"
    alert.dismissed_at = now
    instance.log_event("reminder_dismissed", now, alert_id)
    return True


def disable(instance: TaskInstance, now: datetime | None = None) -> bool:
    """Suppress delivery for the whole instance; alert data is left as is."""
    if now is None:
        now = utc_now()

    if not instance.reminder_status.enabled:
        return False

    instance.reminder_status.enabled = False
    for alert in instance.reminder_status.alerts:
        if alert.status in ("pending", "snoozed"):
            instance.log_event("reminder_cancelled", now, alert.id)
    instance.updated_at = now
    return True


def enable(instance: TaskInstance, now: datetime | None = None) -> bool:
    if now is None:
        now = utc_now()

    if instance.reminder_status.enabled:
        return False

    instance.reminder_status.enabled = True
    instance.updated_at = now
    return True


def reanchor(instance: TaskInstance, anchor_time: datetime) -> int:
    """Recompute pending relative alerts for a new anchor time.

    Absolute alerts keep their configured time. Returns the number of
    alerts that moved.
    """
    moved = 0
    for alert in instance.reminder_status.alerts:
        if alert.status != "pending" or not is_anchored(alert.alert_config):
            continue
        new_time = fire_time(alert.alert_config, anchor_time)
        if new_time != alert.scheduled_time:
            alert.scheduled_time = new_time
            moved += 1
    return moved


def next_reminder(instance: TaskInstance) -> AlertState | None:
    """Earliest alert still waiting to fire, or None."""
    if not instance.reminder_status.enabled:
        return None

    waiting = [
        alert
        for alert in instance.reminder_status.alerts
        if alert.status in ("pending", "snoozed")
    ]
    if not waiting:
        return None
    return min(waiting, key=lambda alert: alert.scheduled_time)


def reminder_stats(instance: TaskInstance) -> dict[str, int]:
    """Count alerts per status."""
    stats = {"total": 0, "pending": 0, "triggered": 0, "snoozed": 0, "dismissed": 0}
    for alert in instance.reminder_status.alerts:
        stats["total"] += 1
        stats[alert.status] += 1
    stats["global_snooze_count"] = instance.reminder_status.global_snooze_count
    return stats
