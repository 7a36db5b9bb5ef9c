"""Time and timezone utilities."""

from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(ZoneInfo("UTC"))


def to_utc(dt: datetime, tz: str) -> datetime:
    """Convert a timezone-aware datetime to UTC."""
    if dt.tzinfo is None:
        # Assume it's in the given timezone
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt.astimezone(ZoneInfo("UTC"))


def from_utc(dt: datetime, tz: str) -> datetime:
    """Convert a UTC datetime to the given timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo("UTC"))
    return dt.astimezone(ZoneInfo(tz))


def ensure_aware(dt: datetime, tz: str = "UTC") -> datetime:
    """Attach `tz` to a naive datetime; aware datetimes are returned unchanged."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def weekday_index(dt: datetime) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    return (dt.weekday() + 1) % 7


def is_weekend(dt: datetime, tz: str) -> bool:
    """Check if a datetime falls on Saturday or Sunday in the given timezone."""
    return from_utc(dt, tz).weekday() >= 5


def is_within_hours(dt: datetime, start: str, end: str, tz: str) -> bool:
    """Check if a datetime falls within a daily HH:MM window.

    Args:
        dt: The datetime to check (UTC)
        start: Window start in HH:MM format (24-hour)
        end: Window end in HH:MM format (24-hour)
        tz: Timezone the window is expressed in

    Returns:
        True if the local time of `dt` is inside the window
    """
    local_time = from_utc(dt, tz).time()

    window_start = time.fromisoformat(start)
    window_end = time.fromisoformat(end)

    # Handle overnight windows (e.g., 22:00 to 06:00)
    if window_start <= window_end:
        return window_start <= local_time <= window_end
    else:
        return local_time >= window_start or local_time <= window_end


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end (negative if end is earlier)."""
    return int((end - start).total_seconds() // 60)


class SystemClock:
    """Wall clock returning aware UTC datetimes."""

    def now(self) -> datetime:
        return utc_now()


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self._now = ensure_aware(now)

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = ensure_aware(now)

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by a timedelta built from kwargs."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


def format_duration(minutes: int) -> str:
    """Format minutes into a human-readable duration.

    Examples:
        15 -> "15 minutes"
        60 -> "1 hour"
        90 -> "1 hour 30 minutes"
        1440 -> "1 day"
        1530 -> "1 day 1 hour 30 minutes"
    """
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"

    days, remainder = divmod(minutes, 1440)
    hours, mins = divmod(remainder, 60)

    parts = []
    if days:
        parts.append(f"{days} day{'s' if days != 1 else ''}")
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if mins:
        parts.append(f"{mins} minute{'s' if mins != 1 else ''}")
    return " ".join(parts)


def format_relative_time(dt: datetime, now: datetime | None = None) -> str:
    """Format a datetime relative to now.

    Examples:
        "in 5 minutes"
        "in 2 hours"
        "tomorrow"
        "2 days overdue"
    """
    if now is None:
        now = utc_now()

    delta = dt - now
    total_seconds = delta.total_seconds()

    if total_seconds < 0:
        # Overdue
        abs_seconds = abs(total_seconds)
        if abs_seconds < 3600:
            minutes = int(abs_seconds / 60)
            return f"{minutes} minute{'s' if minutes != 1 else ''} overdue"
        elif abs_seconds < 86400:
            hours = int(abs_seconds / 3600)
            return f"{hours} hour{'s' if hours != 1 else ''} overdue"
        else:
            days = int(abs_seconds / 86400)
            return f"{days} day{'s' if days != 1 else ''} overdue"
    else:
        # Future
        if total_seconds < 3600:
            minutes = int(total_seconds / 60)
            return f"in {minutes} minute{'s' if minutes != 1 else ''}"
        elif total_seconds < 86400:
            hours = int(total_seconds / 3600)
            return f"in {hours} hour{'s' if hours != 1 else ''}"
        elif total_seconds < 172800:  # 2 days
            return "tomorrow"
        else:
            days = int(total_seconds / 86400)
            return f"in {days} days"
