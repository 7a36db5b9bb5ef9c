"""Data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar, Literal

from taskpulse.utils.constants import (
    DEFAULT_DURATION_MINUTES,
    DEFAULT_MAX_DELAY_DAYS,
    DEFAULT_SNOOZE_MAX_COUNT,
    DEFAULT_SNOOZE_MINUTES,
    DEFAULT_TIMEZONE,
    INSTANCE_MAX_DELAY_DAYS,
)


TemplateStatus = Literal["draft", "active", "paused", "archived"]
InstanceStatus = Literal["pending", "inProgress", "completed", "cancelled", "overdue"]
AlertStatus = Literal["pending", "triggered", "snoozed", "dismissed"]
AlertType = Literal["notification", "sound", "popup"]
InstanceTimeType = Literal["allDay", "timed", "timeRange"]

TERMINAL_INSTANCE_STATUSES = ("completed", "cancelled")
ACTIVE_INSTANCE_STATUSES = ("pending", "inProgress")


# End conditions


@dataclass(frozen=True)
class NoEnd:
    """Recurrence continues indefinitely."""

    kind: ClassVar[str] = "none"


@dataclass(frozen=True)
class EndOnDate:
    """Recurrence stops after the given point in time."""

    date: datetime
    kind: ClassVar[str] = "onDate"


@dataclass(frozen=True)
class EndAfterCount:
    """Recurrence stops after `count` occurrences (counted by the caller)."""

    count: int
    kind: ClassVar[str] = "afterCount"


EndCondition = NoEnd | EndOnDate | EndAfterCount


# Recurrence rules (one variant per kind)


@dataclass(frozen=True)
class NoRecurrence:
    """One-shot task: only the template's base time."""

    kind: ClassVar[str] = "none"


@dataclass(frozen=True)
class Daily:
    interval: int = 1
    end: EndCondition = NoEnd()
    kind: ClassVar[str] = "daily"


@dataclass(frozen=True)
class Weekly:
    interval: int = 1
    weekdays: frozenset[int] = frozenset()  # 0 = Sunday ... 6 = Saturday
    end: EndCondition = NoEnd()
    kind: ClassVar[str] = "weekly"


@dataclass(frozen=True)
class Monthly:
    interval: int = 1
    end: EndCondition = NoEnd()
    kind: ClassVar[str] = "monthly"


@dataclass(frozen=True)
class Yearly:
    interval: int = 1
    end: EndCondition = NoEnd()
    kind: ClassVar[str] = "yearly"


@dataclass(frozen=True)
class Custom:
    rrule: str  # iCalendar RRULE body, e.g. "FREQ=WEEKLY;BYDAY=MO,TH"
    end: EndCondition = NoEnd()
    kind: ClassVar[str] = "custom"


RecurrenceRule = NoRecurrence | Daily | Weekly | Monthly | Yearly | Custom


# Reminder configuration


@dataclass(frozen=True)
class AbsoluteTiming:
    """Fire at a fixed point in time."""

    time: datetime
    kind: ClassVar[str] = "absolute"


@dataclass(frozen=True)
class RelativeTiming:
    """Fire a number of minutes before the anchor."""

    minutes_before: int
    kind: ClassVar[str] = "relative"


AlertTiming = AbsoluteTiming | RelativeTiming


@dataclass(frozen=True)
class ReminderAlertConfig:
    """One configured reminder. Immutable; instances keep their own copy."""

    id: str
    timing: AlertTiming | None
    type: AlertType = "notification"
    message: str | None = None


@dataclass(frozen=True)
class SnoozeConfig:
    enabled: bool = True
    interval_minutes: int = DEFAULT_SNOOZE_MINUTES
    max_count: int = DEFAULT_SNOOZE_MAX_COUNT


@dataclass(frozen=True)
class ReminderConfig:
    enabled: bool = True
    alerts: tuple[ReminderAlertConfig, ...] = ()
    snooze: SnoozeConfig = SnoozeConfig()


@dataclass(frozen=True)
class SchedulingPolicy:
    allow_reschedule: bool = True
    max_delay_days: int = DEFAULT_MAX_DELAY_DAYS
    skip_weekends: bool = False
    skip_holidays: bool = False
    working_hours_only: bool = False


@dataclass(frozen=True)
class BaseTime:
    start: datetime  # UTC
    end: datetime | None = None  # UTC
    duration_minutes: int = DEFAULT_DURATION_MINUTES


@dataclass
class TemplateMetadata:
    category: str = "general"
    tags: list[str] = field(default_factory=list)
    priority: int = 3  # 1 (lowest) .. 5 (highest)
    estimated_duration: int | None = None  # minutes
    location: str | None = None


@dataclass
class TaskTemplate:
    """Recurring task definition. Owns scheduling policy, not instances."""

    id: str
    title: str
    base_time: BaseTime
    recurrence: RecurrenceRule = NoRecurrence()
    timezone: str = DEFAULT_TIMEZONE
    time_type: InstanceTimeType = "timed"
    reminder_config: ReminderConfig = ReminderConfig()
    scheduling_policy: SchedulingPolicy = SchedulingPolicy()
    description: str | None = None
    metadata: TemplateMetadata = field(default_factory=TemplateMetadata)
    status: TemplateStatus = "draft"
    total_instances: int = 0
    completed_instances: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    activated_at: datetime | None = None
    paused_at: datetime | None = None
    last_instance_date: datetime | None = None
    version: int = 1


# Instance state


@dataclass
class SnoozeRecord:
    snoozed_at: datetime
    snooze_until: datetime
    reason: str | None = None


@dataclass
class AlertState:
    """Lifecycle of one alert inside an instance."""

    id: str
    alert_config: ReminderAlertConfig
    scheduled_time: datetime  # UTC
    status: AlertStatus = "pending"
    triggered_at: datetime | None = None
    dismissed_at: datetime | None = None
    snooze_history: list[SnoozeRecord] = field(default_factory=list)


@dataclass
class ReminderStatus:
    enabled: bool = True
    alerts: list[AlertState] = field(default_factory=list)
    snooze: SnoozeConfig = SnoozeConfig()
    global_snooze_count: int = 0
    last_triggered_at: datetime | None = None


@dataclass
class InstanceTimeConfig:
    scheduled_time: datetime  # UTC
    type: InstanceTimeType = "timed"
    end_time: datetime | None = None  # UTC
    estimated_duration: int | None = None  # minutes
    timezone: str = DEFAULT_TIMEZONE
    allow_reschedule: bool = True
    max_delay_days: int = INSTANCE_MAX_DELAY_DAYS


@dataclass
class LifecycleEvent:
    """Audit trail entry on an instance."""

    type: str
    timestamp: datetime
    alert_id: str | None = None
    details: dict = field(default_factory=dict)


@dataclass
class TaskInstance:
    """One concrete occurrence of a template with its own execution state."""

    id: str
    template_id: str
    title: str
    time_config: InstanceTimeConfig
    status: InstanceStatus = "pending"
    reminder_status: ReminderStatus = field(default_factory=ReminderStatus)
    description: str | None = None
    priority: int = 3
    category: str = "general"
    tags: list[str] = field(default_factory=list)
    actual_start_time: datetime | None = None
    actual_end_time: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    events: list[LifecycleEvent] = field(default_factory=list)
    version: int = 1

    @property
    def scheduled_time(self) -> datetime:
        return self.time_config.scheduled_time

    @property
    def alerts(self) -> tuple[AlertState, ...]:
        """Snapshot of the alert list; mutate alerts through engine.alerts."""
        return tuple(self.reminder_status.alerts)

    def find_alert(self, alert_id: str) -> AlertState | None:
        for alert in self.reminder_status.alerts:
            if alert.id == alert_id:
                return alert
        return None

    def log_event(
        self,
        event_type: str,
        timestamp: datetime,
        alert_id: str | None = None,
        **details,
    ) -> None:
        self.events.append(
            LifecycleEvent(
                type=event_type, timestamp=timestamp, alert_id=alert_id, details=details
            )
        )
        self.updated_at = timestamp
