"""Task instance generation and conflict filtering."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable

from taskpulse.db.models import (
    ACTIVE_INSTANCE_STATUSES,
    EndAfterCount,
    EndOnDate,
    InstanceTimeConfig,
    ReminderStatus,
    TaskInstance,
    TaskTemplate,
)
from taskpulse.engine.alerts import build_alert_states
from taskpulse.engine.recurrence import base_is_occurrence, next_occurrence, validate_rule
from taskpulse.utils.constants import (
    DEFAULT_DURATION_MINUTES,
    DEFAULT_INSTANCE_COUNT,
    DEFAULT_WORKING_HOURS_END,
    DEFAULT_WORKING_HOURS_START,
    MAX_GENERATION_STEPS,
)
from taskpulse.utils.time_utils import from_utc, is_weekend, is_within_hours, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class GenerateOptions:
    """Bounds and policy inputs for one generate call.

    With neither `count` nor `date_range`, DEFAULT_INSTANCE_COUNT instances
    are produced. A date range without a count yields every occurrence in
    the range (up to MAX_GENERATION_STEPS).
    """

    count: int | None = None
    date_range: DateRange | None = None
    holidays: frozenset[date] = field(default_factory=frozenset)
    working_hours: tuple[str, str] = (DEFAULT_WORKING_HOURS_START, DEFAULT_WORKING_HOURS_END)


def create_instance_from_template(
    template: TaskTemplate,
    scheduled_time: datetime | None = None,
    end_time: datetime | None = None,
    instance_id: str | None = None,
    now: datetime | None = None,
) -> TaskInstance:
    """Build one instance of a template at `scheduled_time`.

    The instance gets its own copy of the template's alerts, anchored to
    its scheduled time.
    """
    if now is None:
        now = utc_now()

    base = template.base_time
    policy = template.scheduling_policy
    reminder_config = template.reminder_config

    if scheduled_time is None:
        scheduled_time = base.start
    if end_time is None and base.end is not None:
        # Same slot length as the template
        end_time = scheduled_time + (base.end - base.start)

    instance = TaskInstance(
        id=instance_id or str(uuid.uuid4()),
        template_id=template.id,
        title=template.title,
        time_config=InstanceTimeConfig(
            scheduled_time=scheduled_time,
            type=template.time_type,
            end_time=end_time,
            estimated_duration=template.metadata.estimated_duration or base.duration_minutes,
            timezone=template.timezone,
            allow_reschedule=policy.allow_reschedule,
            max_delay_days=policy.max_delay_days,
        ),
        reminder_status=ReminderStatus(
            enabled=reminder_config.enabled,
            alerts=build_alert_states(reminder_config.alerts, scheduled_time),
            snooze=reminder_config.snooze,
        ),
        description=template.description,
        priority=template.metadata.priority,
        category=template.metadata.category,
        tags=list(template.metadata.tags),
        created_at=now,
        updated_at=now,
    )

    for alert in instance.reminder_status.alerts:
        instance.log_event(
            "reminder_scheduled",
            now,
            alert.id,
            scheduled_for=alert.scheduled_time.isoformat(),
        )

    return instance


def generate_instances(
    template: TaskTemplate,
    options: GenerateOptions | None = None,
    now: datetime | None = None,
) -> list[TaskInstance]:
    """Materialize instances for a template's upcoming occurrences.

    The base time is the first occurrence; each later one is the rule's next
    occurrence after the previous. Generation stops when the rule is
    exhausted, `count` instances were produced, or an occurrence falls after
    the date range or the rule's end date.

    Occurrences dropped by the scheduling policy (weekends, holidays,
    working hours) don't use up `count`, but still count toward the rule's
    `EndAfterCount`.
    """
    if options is None:
        options = GenerateOptions()

    if template.status != "active":
        logger.warning(
            f"Template {template.id} is {template.status}; only active templates generate instances"
        )
        return []

    rule = template.recurrence
    errors = validate_rule(rule)
    if errors:
        logger.warning(f"Skipping template {template.id}: {'; '.join(errors)}")
        return []

    limit = options.count
    if limit is None and options.date_range is None:
        limit = DEFAULT_INSTANCE_COUNT
    if limit is not None and limit <= 0:
        return []

    end = getattr(rule, "end", None)
    max_occurrences = end.count if isinstance(end, EndAfterCount) else None
    end_date = end.date if isinstance(end, EndOnDate) else None
    range_start = options.date_range.start if options.date_range else None
    range_end = options.date_range.end if options.date_range else None

    base = template.base_time.start
    tz = template.timezone
    if base_is_occurrence(rule, base, tz):
        occurrence = base
    else:
        occurrence = next_occurrence(rule, base, base, tz)

    instances: list[TaskInstance] = []
    walked = 0
    steps = 0

    while occurrence is not None:
        if max_occurrences is not None and walked >= max_occurrences:
            break
        if end_date is not None and occurrence > end_date:
            break
        if range_end is not None and occurrence > range_end:
            break

        walked += 1
        in_range = range_start is None or occurrence >= range_start
        if in_range and _allowed_by_policy(template, occurrence, options):
            instances.append(create_instance_from_template(template, occurrence, now=now))
            if limit is not None and len(instances) >= limit:
                break

        steps += 1
        if steps >= MAX_GENERATION_STEPS:
            logger.warning(
                f"Template {template.id}: stopped after {MAX_GENERATION_STEPS} recurrence steps"
            )
            break

        following = next_occurrence(rule, base, occurrence, tz)
        if following is not None and following <= occurrence:
            logger.error(
                f"Template {template.id}: recurrence did not advance past {occurrence.isoformat()}"
            )
            break
        occurrence = following

    logger.debug(f"Generated {len(instances)} instances for template {template.id}")
    return instances


def _allowed_by_policy(
    template: TaskTemplate, occurrence: datetime, options: GenerateOptions
) -> bool:
    policy = template.scheduling_policy
    tz = template.timezone

    if policy.skip_weekends and is_weekend(occurrence, tz):
        return False
    if policy.skip_holidays and from_utc(occurrence, tz).date() in options.holidays:
        return False
    if policy.working_hours_only:
        start, end = options.working_hours
        if not is_within_hours(occurrence, start, end, tz):
            return False
    return True


# Conflict detection


def instance_interval(instance: TaskInstance) -> tuple[datetime, datetime]:
    """Closed time interval an instance occupies."""
    config = instance.time_config
    start = config.scheduled_time
    if config.end_time is not None:
        return start, config.end_time
    minutes = config.estimated_duration or DEFAULT_DURATION_MINUTES
    return start, start + timedelta(minutes=minutes)


def has_time_overlap(first: TaskInstance, second: TaskInstance) -> bool:
    """Check if two instances overlap (endpoints inclusive)."""
    start1, end1 = instance_interval(first)
    start2, end2 = instance_interval(second)
    return start1 <= end2 and start2 <= end1


def find_conflicts(
    existing: Iterable[TaskInstance], candidate: TaskInstance
) -> list[TaskInstance]:
    """Existing pending/in-progress instances that overlap `candidate`."""
    return [
        instance
        for instance in existing
        if instance.id != candidate.id
        and instance.status in ACTIVE_INSTANCE_STATUSES
        and has_time_overlap(instance, candidate)
    ]


def filter_conflicts(
    candidates: Iterable[TaskInstance], existing: Iterable[TaskInstance]
) -> list[TaskInstance]:
    """Drop candidates that collide with existing active instances."""
    blocking = [i for i in existing if i.status in ACTIVE_INSTANCE_STATUSES]

    accepted = []
    for candidate in candidates:
        conflicts = find_conflicts(blocking, candidate)
        if conflicts:
            logger.debug(
                f"Dropping instance at {candidate.scheduled_time.isoformat()}: "
                f"overlaps {len(conflicts)} existing instance(s)"
            )
            continue
        accepted.append(candidate)

    return accepted
