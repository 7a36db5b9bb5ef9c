"""Recurrence rule evaluation.

`next_occurrence` is pure: it never counts occurrences and never raises for a
bad rule. Counting (`EndAfterCount`) is left to the instance generator.
"""

import logging
import re
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta
from dateutil.rrule import rrulestr

from taskpulse.db.models import (
    Custom,
    Daily,
    EndAfterCount,
    EndOnDate,
    Monthly,
    NoEnd,
    NoRecurrence,
    RecurrenceRule,
    Weekly,
    Yearly,
)
from taskpulse.utils.constants import WEEKDAY_NAMES
from taskpulse.utils.time_utils import from_utc, weekday_index

logger = logging.getLogger(__name__)


def validate_rule(rule: RecurrenceRule) -> list[str]:
    """Return a list of problems with a rule (empty if the rule is usable)."""
    errors: list[str] = []

    if isinstance(rule, NoRecurrence):
        return errors

    if isinstance(rule, Custom):
        if not rule.rrule or not rule.rrule.strip():
            errors.append("custom recurrence requires an RRULE")
    else:
        interval = getattr(rule, "interval", None)
        if not isinstance(interval, int) or interval < 1:
            errors.append(f"interval must be a positive integer (got {interval!r})")

    if isinstance(rule, Weekly):
        bad_days = sorted(d for d in rule.weekdays if not 0 <= d <= 6)
        if bad_days:
            errors.append(f"weekdays must be between 0 and 6 (got {bad_days})")

    end = getattr(rule, "end", None)
    if end is None:
        errors.append("end condition is missing")
    elif isinstance(end, EndAfterCount) and (
        not isinstance(end.count, int) or end.count < 1
    ):
        errors.append(f"occurrence count must be positive (got {end.count!r})")
    elif not isinstance(end, (NoEnd, EndOnDate, EndAfterCount)):
        errors.append(f"unknown end condition {end!r}")

    return errors


def next_occurrence(
    rule: RecurrenceRule,
    base_time: datetime,
    from_time: datetime,
    timezone: str | None = None,
) -> datetime | None:
    """Get the next occurrence of `rule` after `from_time`.

    Weekdays, days of the month and the time of day are those of
    `timezone` when given, otherwise of `base_time`'s own zone.

    Args:
        rule: Recurrence rule of the template
        base_time: The template's first scheduled time (timezone-aware)
        from_time: Reference time; the result is never at or before it
        timezone: IANA name of the template's zone

    Returns:
        Next occurrence as a timezone-aware datetime, or None when the rule
        is exhausted or malformed
    """
    if isinstance(rule, NoRecurrence):
        # One-shot task: only its own slot, and only while it is still ahead
        return base_time if base_time > from_time else None

    errors = validate_rule(rule)
    if errors:
        logger.warning(f"Ignoring malformed {rule.kind} rule: {'; '.join(errors)}")
        return None

    if isinstance(rule.end, EndOnDate) and from_time > rule.end.date:
        return None

    if timezone is None or base_time.tzinfo is None:
        return _next_in_zone(rule, base_time, from_time)

    stored_tz = base_time.tzinfo
    upcoming = _next_in_zone(
        rule, from_utc(base_time, timezone), from_utc(from_time, timezone)
    )
    return upcoming.astimezone(stored_tz) if upcoming is not None else None


def _next_in_zone(
    rule: RecurrenceRule, base_time: datetime, from_time: datetime
) -> datetime | None:
    if isinstance(rule, Daily):
        return _next_daily(base_time, from_time, rule.interval)
    elif isinstance(rule, Weekly):
        return _next_weekly(base_time, from_time, rule.interval, rule.weekdays)
    elif isinstance(rule, Monthly):
        return _next_monthly(base_time, from_time, rule.interval)
    elif isinstance(rule, Yearly):
        return _next_monthly(base_time, from_time, 12 * rule.interval)
    elif isinstance(rule, Custom):
        return _next_custom(base_time, from_time, rule.rrule)

    logger.warning(f"Unsupported recurrence rule: {rule!r}")
    return None


def base_is_occurrence(
    rule: RecurrenceRule, base_time: datetime, timezone: str | None = None
) -> bool:
    """Whether the base time itself is the rule's first occurrence.

    It is, except when a weekly rule lists weekdays that don't include the
    base's day, or a custom RRULE doesn't match it.
    """
    if timezone is not None and base_time.tzinfo is not None:
        base_time = from_utc(base_time, timezone)

    if isinstance(rule, Weekly) and rule.weekdays:
        return weekday_index(base_time) in rule.weekdays
    if isinstance(rule, Custom):
        earlier = base_time - timedelta(microseconds=1)
        return _next_custom(base_time, earlier, rule.rrule) == base_time
    return True


def _next_daily(base_time: datetime, from_time: datetime, interval: int) -> datetime:
    candidate = max(base_time, from_time)
    if candidate == from_time:
        # Already at this instant: step a full interval forward
        candidate += timedelta(days=interval)
    return candidate


def _next_weekly(
    base_time: datetime,
    from_time: datetime,
    interval: int,
    weekdays: frozenset[int],
) -> datetime:
    if not weekdays:
        return max(base_time, from_time) + timedelta(days=7 * interval)

    # Work in the base time's zone so the copied hour/minute mean the same thing
    local_from = from_time.astimezone(base_time.tzinfo) if base_time.tzinfo else from_time
    current = weekday_index(local_from)
    ordered = sorted(weekdays)

    later_this_week = [day for day in ordered if day > current]
    if later_this_week:
        days_to_add = later_this_week[0] - current
    else:
        days_to_add = 7 * interval + ordered[0] - current

    target = local_from + timedelta(days=days_to_add)
    return target.replace(
        hour=base_time.hour, minute=base_time.minute, second=0, microsecond=0
    )


def _next_monthly(base_time: datetime, from_time: datetime, months: int) -> datetime:
    # relativedelta clamps an absolute day past the month's end to its last day
    # (base on the 31st -> Feb 28/29, Apr 30, ...)
    candidate = max(base_time, from_time)
    return candidate + relativedelta(months=+months, day=base_time.day)


def _next_custom(base_time: datetime, from_time: datetime, rrule_text: str) -> datetime | None:
    text = rrule_text.strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:"):]

    try:
        rule = rrulestr(text, dtstart=base_time)
        next_date = rule.after(from_time)
    except (ValueError, TypeError) as e:
        logger.warning(f"Invalid RRULE {rrule_text!r}: {e}")
        return None

    if next_date is None:
        return None

    # Ensure timezone info is preserved
    if next_date.tzinfo is None and base_time.tzinfo is not None:
        next_date = next_date.replace(tzinfo=base_time.tzinfo)

    return next_date


def rule_from_text(recurrence_text: str) -> RecurrenceRule | None:
    """Build a recurrence rule from a short English phrase.

    Examples:
        "every day" -> Daily()
        "every 2 weeks" -> Weekly(interval=2)
        "every monday and thursday" -> Weekly(weekdays={1, 4})
        "every weekday" -> Weekly(weekdays={1, 2, 3, 4, 5})
        "every 1st" -> Custom("FREQ=MONTHLY;BYMONTHDAY=1")
        "monthly" -> Monthly()

    Returns:
        RecurrenceRule or None if not recognized
    """
    text = recurrence_text.lower().strip()

    if text in ("never", "once", "none", "no repeat"):
        return NoRecurrence()

    # Simple frequencies
    if "daily" in text or text == "every day":
        return Daily()
    elif "weekly" in text or text == "every week":
        return Weekly()
    elif "monthly" in text or text == "every month":
        return Monthly()
    elif "yearly" in text or "annually" in text or text == "every year":
        return Yearly()

    # Every N units
    match = re.match(r"every\s+(\d+)\s+(day|week|month|year)s?", text)
    if match:
        interval = int(match.group(1))
        unit = match.group(2)
        if interval < 1:
            return None
        rule_map = {
            "day": Daily,
            "week": Weekly,
            "month": Monthly,
            "year": Yearly,
        }
        return rule_map[unit](interval=interval)

    # Every specific day of month (1st, 15th, etc.)
    match = re.match(r"every\s+(\d{1,2})(?:st|nd|rd|th)\b", text)
    if match:
        day = int(match.group(1))
        if 1 <= day <= 31:
            return Custom(rrule=f"FREQ=MONTHLY;BYMONTHDAY={day}")
        return None

    if "weekday" in text:
        return Weekly(weekdays=frozenset({1, 2, 3, 4, 5}))
    if "weekend" in text:
        return Weekly(weekdays=frozenset({0, 6}))

    # Named weekdays, possibly several ("every monday and friday")
    days = {
        index
        for index, day_name in enumerate(WEEKDAY_NAMES)
        if re.search(rf"\b{day_name}s?\b", text)
    }
    if days:
        return Weekly(weekdays=frozenset(days))

    return None
