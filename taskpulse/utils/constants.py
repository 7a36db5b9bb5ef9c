"""Constants and default values."""

# Instance generation
DEFAULT_INSTANCE_COUNT = 10  # Occurrences materialized per generate call
MAX_GENERATION_STEPS = 1000  # Hard cap on recurrence steps per call
DEFAULT_DURATION_MINUTES = 60  # Assumed length of a task without an end time

# Scheduling policy defaults
DEFAULT_MAX_DELAY_DAYS = 7
INSTANCE_MAX_DELAY_DAYS = 3  # Fallback when an instance carries no policy
DEFAULT_WORKING_HOURS_START = "09:00"
DEFAULT_WORKING_HOURS_END = "18:00"

# Snooze defaults
DEFAULT_SNOOZE_MINUTES = 10
DEFAULT_SNOOZE_MAX_COUNT = 3

# Limits
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000
MAX_ALERTS_PER_TASK = 10

# Default timezone
DEFAULT_TIMEZONE = "UTC"

# Weekday names indexed 0 = Sunday ... 6 = Saturday
WEEKDAY_SHORT_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
WEEKDAY_NAMES = [
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
]
