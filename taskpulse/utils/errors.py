"""Exception hierarchy and operation results."""

from dataclasses import dataclass
from typing import Any


class TaskPulseError(Exception):
    """Base class for all taskpulse errors."""


class InvalidRuleError(TaskPulseError):
    """A recurrence rule or alert timing is malformed."""


class InvalidTransitionError(TaskPulseError):
    """A status change is not allowed from the current state."""


class RescheduleRejectedError(TaskPulseError):
    """A reschedule request violates the instance's scheduling policy."""


class NotFoundError(TaskPulseError):
    """A template or instance does not exist."""


class DeliveryError(TaskPulseError):
    """A notification could not be handed off."""


@dataclass
class OperationResult:
    """Structured outcome of a user-facing operation."""

    success: bool
    message: str
    data: Any = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str) -> "OperationResult":
        return cls(success=False, message=message)
