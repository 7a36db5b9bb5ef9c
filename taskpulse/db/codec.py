"""Conversion between aggregates and JSON-ready dicts.

Datetimes are stored as ISO 8601 strings with their UTC offset.
"""

import json
from datetime import datetime
from typing import Any

from taskpulse.db.models import (
    AbsoluteTiming,
    AlertState,
    AlertTiming,
    BaseTime,
    Custom,
    Daily,
    EndAfterCount,
    EndCondition,
    EndOnDate,
    InstanceTimeConfig,
    LifecycleEvent,
    Monthly,
    NoEnd,
    NoRecurrence,
    RecurrenceRule,
    RelativeTiming,
    ReminderAlertConfig,
    ReminderConfig,
    ReminderStatus,
    SchedulingPolicy,
    SnoozeConfig,
    SnoozeRecord,
    TaskInstance,
    TaskTemplate,
    TemplateMetadata,
    Weekly,
    Yearly,
)


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# Recurrence


def end_to_dict(end: EndCondition) -> dict:
    if isinstance(end, EndOnDate):
        return {"kind": end.kind, "date": _dt(end.date)}
    if isinstance(end, EndAfterCount):
        return {"kind": end.kind, "count": end.count}
    return {"kind": NoEnd.kind}


def end_from_dict(data: dict | None) -> EndCondition:
    if not data:
        return NoEnd()
    kind = data.get("kind")
    if kind == EndOnDate.kind:
        return EndOnDate(date=_parse_dt(data["date"]))
    if kind == EndAfterCount.kind:
        return EndAfterCount(count=data["count"])
    return NoEnd()


def rule_to_dict(rule: RecurrenceRule) -> dict:
    data: dict[str, Any] = {"kind": rule.kind}

    if isinstance(rule, NoRecurrence):
        return data

    if isinstance(rule, Custom):
        data["rrule"] = rule.rrule
    else:
        data["interval"] = rule.interval
    if isinstance(rule, Weekly):
        data["weekdays"] = sorted(rule.weekdays)

    data["end"] = end_to_dict(rule.end)
    return data


def rule_from_dict(data: dict | None) -> RecurrenceRule:
    if not data:
        return NoRecurrence()

    kind = data.get("kind", "none")
    end = end_from_dict(data.get("end"))
    interval = data.get("interval", 1)

    if kind == "daily":
        return Daily(interval=interval, end=end)
    elif kind == "weekly":
        return Weekly(interval=interval, weekdays=frozenset(data.get("weekdays", ())), end=end)
    elif kind == "monthly":
        return Monthly(interval=interval, end=end)
    elif kind == "yearly":
        return Yearly(interval=interval, end=end)
    elif kind == "custom":
        return Custom(rrule=data.get("rrule", ""), end=end)
    return NoRecurrence()


# Reminder configuration


def _timing_to_dict(timing: AlertTiming | None) -> dict | None:
    if isinstance(timing, AbsoluteTiming):
        return {"kind": timing.kind, "time": _dt(timing.time)}
    if isinstance(timing, RelativeTiming):
        return {"kind": timing.kind, "minutes_before": timing.minutes_before}
    return None


def _timing_from_dict(data: dict | None) -> AlertTiming | None:
    if not data:
        return None
    if data.get("kind") == AbsoluteTiming.kind:
        return AbsoluteTiming(time=_parse_dt(data["time"]))
    if data.get("kind") == RelativeTiming.kind:
        return RelativeTiming(minutes_before=data["minutes_before"])
    return None


def alert_config_to_dict(config: ReminderAlertConfig) -> dict:
    return {
        "id": config.id,
        "timing": _timing_to_dict(config.timing),
        "type": config.type,
        "message": config.message,
    }


def alert_config_from_dict(data: dict) -> ReminderAlertConfig:
    return ReminderAlertConfig(
        id=data["id"],
        timing=_timing_from_dict(data.get("timing")),
        type=data.get("type", "notification"),
        message=data.get("message"),
    )


def _snooze_to_dict(snooze: SnoozeConfig) -> dict:
    return {
        "enabled": snooze.enabled,
        "interval_minutes": snooze.interval_minutes,
        "max_count": snooze.max_count,
    }


def _snooze_from_dict(data: dict | None) -> SnoozeConfig:
    if not data:
        return SnoozeConfig()
    return SnoozeConfig(**data)


# Templates


def template_to_dict(template: TaskTemplate) -> dict:
    base = template.base_time
    policy = template.scheduling_policy
    meta = template.metadata

    return {
        "id": template.id,
        "title": template.title,
        "description": template.description,
        "base_time": {
            "start": _dt(base.start),
            "end": _dt(base.end),
            "duration_minutes": base.duration_minutes,
        },
        "recurrence": rule_to_dict(template.recurrence),
        "timezone": template.timezone,
        "time_type": template.time_type,
        "reminder_config": {
            "enabled": template.reminder_config.enabled,
            "alerts": [alert_config_to_dict(a) for a in template.reminder_config.alerts],
            "snooze": _snooze_to_dict(template.reminder_config.snooze),
        },
        "scheduling_policy": {
            "allow_reschedule": policy.allow_reschedule,
            "max_delay_days": policy.max_delay_days,
            "skip_weekends": policy.skip_weekends,
            "skip_holidays": policy.skip_holidays,
            "working_hours_only": policy.working_hours_only,
        },
        "metadata": {
            "category": meta.category,
            "tags": list(meta.tags),
            "priority": meta.priority,
            "estimated_duration": meta.estimated_duration,
            "location": meta.location,
        },
        "status": template.status,
        "total_instances": template.total_instances,
        "completed_instances": template.completed_instances,
        "created_at": _dt(template.created_at),
        "updated_at": _dt(template.updated_at),
        "activated_at": _dt(template.activated_at),
        "paused_at": _dt(template.paused_at),
        "last_instance_date": _dt(template.last_instance_date),
        "version": template.version,
    }


def template_from_dict(data: dict) -> TaskTemplate:
    base = data["base_time"]
    reminder = data.get("reminder_config") or {}

    return TaskTemplate(
        id=data["id"],
        title=data["title"],
        description=data.get("description"),
        base_time=BaseTime(
            start=_parse_dt(base["start"]),
            end=_parse_dt(base.get("end")),
            duration_minutes=base.get("duration_minutes", 60),
        ),
        recurrence=rule_from_dict(data.get("recurrence")),
        timezone=data.get("timezone", "UTC"),
        time_type=data.get("time_type", "timed"),
        reminder_config=ReminderConfig(
            enabled=reminder.get("enabled", True),
            alerts=tuple(alert_config_from_dict(a) for a in reminder.get("alerts", [])),
            snooze=_snooze_from_dict(reminder.get("snooze")),
        ),
        scheduling_policy=SchedulingPolicy(**(data.get("scheduling_policy") or {})),
        metadata=TemplateMetadata(**(data.get("metadata") or {})),
        status=data.get("status", "draft"),
        total_instances=data.get("total_instances", 0),
        completed_instances=data.get("completed_instances", 0),
        created_at=_parse_dt(data.get("created_at")),
        updated_at=_parse_dt(data.get("updated_at")),
        activated_at=_parse_dt(data.get("activated_at")),
        paused_at=_parse_dt(data.get("paused_at")),
        last_instance_date=_parse_dt(data.get("last_instance_date")),
        version=data.get("version", 1),
    )


# Instances


def _alert_state_to_dict(alert: AlertState) -> dict:
    return {
        "id": alert.id,
        "alert_config": alert_config_to_dict(alert.alert_config),
        "scheduled_time": _dt(alert.scheduled_time),
        "status": alert.status,
        "triggered_at": _dt(alert.triggered_at),
        "dismissed_at": _dt(alert.dismissed_at),
        "snooze_history": [
            {
                "snoozed_at": _dt(record.snoozed_at),
                "snooze_until": _dt(record.snooze_until),
                "reason": record.reason,
            }
            for record in alert.snooze_history
        ],
    }


def _alert_state_from_dict(data: dict) -> AlertState:
    return AlertState(
        id=data["id"],
        alert_config=alert_config_from_dict(data["alert_config"]),
        scheduled_time=_parse_dt(data["scheduled_time"]),
        status=data.get("status", "pending"),
        triggered_at=_parse_dt(data.get("triggered_at")),
        dismissed_at=_parse_dt(data.get("dismissed_at")),
        snooze_history=[
            SnoozeRecord(
                snoozed_at=_parse_dt(record["snoozed_at"]),
                snooze_until=_parse_dt(record["snooze_until"]),
                reason=record.get("reason"),
            )
            for record in data.get("snooze_history", [])
        ],
    )


def instance_to_dict(instance: TaskInstance) -> dict:
    config = instance.time_config
    reminders = instance.reminder_status

    return {
        "id": instance.id,
        "template_id": instance.template_id,
        "title": instance.title,
        "description": instance.description,
        "time_config": {
            "scheduled_time": _dt(config.scheduled_time),
            "type": config.type,
            "end_time": _dt(config.end_time),
            "estimated_duration": config.estimated_duration,
            "timezone": config.timezone,
            "allow_reschedule": config.allow_reschedule,
            "max_delay_days": config.max_delay_days,
        },
        "status": instance.status,
        "reminder_status": {
            "enabled": reminders.enabled,
            "alerts": [_alert_state_to_dict(a) for a in reminders.alerts],
            "snooze": _snooze_to_dict(reminders.snooze),
            "global_snooze_count": reminders.global_snooze_count,
            "last_triggered_at": _dt(reminders.last_triggered_at),
        },
        "priority": instance.priority,
        "category": instance.category,
        "tags": list(instance.tags),
        "actual_start_time": _dt(instance.actual_start_time),
        "actual_end_time": _dt(instance.actual_end_time),
        "completed_at": _dt(instance.completed_at),
        "cancelled_at": _dt(instance.cancelled_at),
        "created_at": _dt(instance.created_at),
        "updated_at": _dt(instance.updated_at),
        "events": [
            {
                "type": event.type,
                "timestamp": _dt(event.timestamp),
                "alert_id": event.alert_id,
                "details": event.details,
            }
            for event in instance.events
        ],
        "version": instance.version,
    }


def instance_from_dict(data: dict) -> TaskInstance:
    config = data["time_config"]
    reminders = data.get("reminder_status") or {}

    return TaskInstance(
        id=data["id"],
        template_id=data["template_id"],
        title=data["title"],
        description=data.get("description"),
        time_config=InstanceTimeConfig(
            scheduled_time=_parse_dt(config["scheduled_time"]),
            type=config.get("type", "timed"),
            end_time=_parse_dt(config.get("end_time")),
            estimated_duration=config.get("estimated_duration"),
            timezone=config.get("timezone", "UTC"),
            allow_reschedule=config.get("allow_reschedule", True),
            max_delay_days=config.get("max_delay_days", 3),
        ),
        status=data.get("status", "pending"),
        reminder_status=ReminderStatus(
            enabled=reminders.get("enabled", True),
            alerts=[_alert_state_from_dict(a) for a in reminders.get("alerts", [])],
            snooze=_snooze_from_dict(reminders.get("snooze")),
            global_snooze_count=reminders.get("global_snooze_count", 0),
            last_triggered_at=_parse_dt(reminders.get("last_triggered_at")),
        ),
        priority=data.get("priority", 3),
        category=data.get("category", "general"),
        tags=list(data.get("tags", [])),
        actual_start_time=_parse_dt(data.get("actual_start_time")),
        actual_end_time=_parse_dt(data.get("actual_end_time")),
        completed_at=_parse_dt(data.get("completed_at")),
        cancelled_at=_parse_dt(data.get("cancelled_at")),
        created_at=_parse_dt(data.get("created_at")),
        updated_at=_parse_dt(data.get("updated_at")),
        events=[
            LifecycleEvent(
                type=event["type"],
                timestamp=_parse_dt(event["timestamp"]),
                alert_id=event.get("alert_id"),
                details=event.get("details", {}),
            )
            for event in data.get("events", [])
        ],
        version=data.get("version", 1),
    )


def dumps(data: dict) -> str:
    return json.dumps(data, separators=(",", ":"))


def loads(text: str) -> dict:
    return json.loads(text)
