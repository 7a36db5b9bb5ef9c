"""Status transitions for templates and instances.

Invalid transitions raise `InvalidTransitionError`; they point at a caller
bug and are turned into failed results by the service layer.
"""

import logging
from datetime import datetime, timedelta

from taskpulse.db.models import ACTIVE_INSTANCE_STATUSES, InstanceStatus, TaskInstance, TaskTemplate
from taskpulse.engine import alerts
from taskpulse.utils.errors import InvalidTransitionError, RescheduleRejectedError
from taskpulse.utils.time_utils import minutes_between, utc_now

logger = logging.getLogger(__name__)

# Allowed instance status changes (excluding reschedule, which keeps status)
INSTANCE_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("inProgress", "completed", "cancelled", "overdue"),
    "inProgress": ("completed", "cancelled", "pending"),
    "overdue": ("pending", "inProgress", "completed", "cancelled"),
    "completed": ("inProgress", "pending"),
    "cancelled": ("pending",),
}


def can_change_status(instance: TaskInstance, new_status: InstanceStatus) -> bool:
    return new_status in INSTANCE_TRANSITIONS.get(instance.status, ())


def _require(instance: TaskInstance, new_status: InstanceStatus, action: str) -> None:
    if not can_change_status(instance, new_status):
        raise InvalidTransitionError(
            f"cannot {action} task '{instance.title}' while it is {instance.status}"
        )


# Instance transitions


def start_instance(instance: TaskInstance, now: datetime | None = None) -> None:
    if now is None:
        now = utc_now()

    if instance.status not in ("pending", "overdue"):
        raise InvalidTransitionError(
            f"cannot start task '{instance.title}' while it is {instance.status}"
        )

    instance.status = "inProgress"
    instance.actual_start_time = now
    instance.log_event("task_started", now)


def complete_instance(instance: TaskInstance, now: datetime | None = None) -> None:
    if now is None:
        now = utc_now()

    _require(instance, "completed", "complete")

    instance.status = "completed"
    instance.completed_at = now
    instance.actual_end_time = now
    details = {}
    if instance.actual_start_time:
        details["actual_duration"] = minutes_between(instance.actual_start_time, now)
    instance.log_event("task_completed", now, **details)


def cancel_instance(instance: TaskInstance, now: datetime | None = None) -> None:
    if now is None:
        now = utc_now()

    _require(instance, "cancelled", "cancel")

    instance.status = "cancelled"
    instance.cancelled_at = now
    instance.log_event("task_cancelled", now)


def undo_complete(instance: TaskInstance, now: datetime | None = None) -> None:
    if now is None:
        now = utc_now()

    if instance.status != "completed":
        raise InvalidTransitionError(
            f"cannot undo completion of task '{instance.title}' while it is {instance.status}"
        )

    instance.status = "inProgress"
    instance.completed_at = None
    instance.actual_end_time = None
    instance.log_event(
        "task_undo", now, previous_status="completed", new_status="inProgress"
    )


def mark_overdue(instance: TaskInstance, now: datetime | None = None) -> bool:
    """Flag a pending instance as overdue. No-op for any other status."""
    if now is None:
        now = utc_now()

    if instance.status != "pending":
        return False

    instance.status = "overdue"
    instance.updated_at = now
    return True


def is_past_due(instance: TaskInstance, now: datetime) -> bool:
    """Whether a pending instance's slot (end time if set) has passed."""
    deadline = instance.time_config.end_time or instance.time_config.scheduled_time
    return deadline < now


def reschedule_instance(
    instance: TaskInstance,
    new_time: datetime,
    new_end_time: datetime | None = None,
    now: datetime | None = None,
) -> int:
    """Move an instance to a new time.

    Raises:
        RescheduleRejectedError: The instance is finished, does not allow
            rescheduling, or the move exceeds `max_delay_days`.

    Returns:
        Number of alerts whose fire time moved
    """
    if now is None:
        now = utc_now()

    config = instance.time_config

    if instance.status in ("completed", "cancelled"):
        raise RescheduleRejectedError(f"task is already {instance.status}")

    if not config.allow_reschedule:
        raise RescheduleRejectedError("this task does not allow rescheduling")

    if config.max_delay_days:
        latest = config.scheduled_time + timedelta(days=config.max_delay_days)
        if new_time > latest:
            raise RescheduleRejectedError(
                f"Cannot reschedule beyond {config.max_delay_days} days"
            )

    if new_end_time is not None and new_end_time <= new_time:
        raise RescheduleRejectedError("end time must be after the new start time")

    old_time = config.scheduled_time
    old_end = config.end_time
    if new_end_time is None and old_end is not None:
        # Keep the original slot length
        new_end_time = new_time + (old_end - old_time)

    config.scheduled_time = new_time
    config.end_time = new_end_time

    if instance.status == "overdue":
        instance.status = "pending"

    instance.log_event(
        "task_rescheduled",
        now,
        old_time=old_time.isoformat(),
        new_time=new_time.isoformat(),
        old_end_time=old_end.isoformat() if old_end else None,
        new_end_time=new_end_time.isoformat() if new_end_time else None,
    )

    moved = alerts.reanchor(instance, new_time)
    logger.debug(f"Rescheduled instance {instance.id}; {moved} alerts moved")
    return moved


def update_reminders(
    instance: TaskInstance,
    enabled: bool,
    alert_configs=None,
    now: datetime | None = None,
) -> None:
    """Replace an instance's reminder settings.

    Passing `alert_configs` discards the current alert states and starts
    over with fresh pending ones.
    """
    if now is None:
        now = utc_now()

    if instance.status in ("completed", "cancelled"):
        raise InvalidTransitionError(
            f"cannot update reminders of a {instance.status} task"
        )

    if enabled:
        alerts.enable(instance, now)
    else:
        alerts.disable(instance, now)

    if alert_configs is not None:
        instance.reminder_status.alerts = alerts.build_alert_states(
            alert_configs, instance.time_config.scheduled_time
        )
        for alert in instance.reminder_status.alerts:
            instance.log_event(
                "reminder_scheduled",
                now,
                alert.id,
                scheduled_for=alert.scheduled_time.isoformat(),
            )


# Template transitions


def activate_template(template: TaskTemplate, now: datetime | None = None) -> None:
    """draft|paused -> active."""
    if now is None:
        now = utc_now()

    if template.status not in ("draft", "paused"):
        raise InvalidTransitionError(
            f"cannot activate template '{template.title}' while it is {template.status}"
        )

    template.status = "active"
    template.activated_at = now
    template.paused_at = None
    template.updated_at = now


def pause_template(template: TaskTemplate, now: datetime | None = None) -> None:
    """active -> paused."""
    if now is None:
        now = utc_now()

    if template.status != "active":
        raise InvalidTransitionError(
            f"only active templates can be paused ('{template.title}' is {template.status})"
        )

    template.status = "paused"
    template.paused_at = now
    template.updated_at = now


def archive_template(template: TaskTemplate, now: datetime | None = None) -> None:
    """Any status except archived -> archived."""
    if now is None:
        now = utc_now()

    if template.status == "archived":
        raise InvalidTransitionError(f"template '{template.title}' is already archived")

    template.status = "archived"
    template.updated_at = now


def resume_template(template: TaskTemplate, now: datetime | None = None) -> None:
    """paused -> active, without regenerating instances."""
    if now is None:
        now = utc_now()

    if template.status != "paused":
        raise InvalidTransitionError(
            f"only paused templates can be resumed ('{template.title}' is {template.status})"
        )

    template.status = "active"
    template.paused_at = None
    template.updated_at = now


def can_delete(instances: list[TaskInstance]) -> tuple[bool, int]:
    """Check whether a template's instances allow a plain delete.

    Returns:
        (deletable, number of pending/in-progress instances)
    """
    active = sum(1 for instance in instances if instance.status in ACTIVE_INSTANCE_STATUSES)
    return active == 0, active
