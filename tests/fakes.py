"""Test doubles and builders."""

from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from taskpulse.db.models import (
    BaseTime,
    Daily,
    RelativeTiming,
    ReminderAlertConfig,
    ReminderConfig,
    TaskTemplate,
)
from taskpulse.ports import NotifyResult

UTC = ZoneInfo("UTC")


def make_template(**overrides) -> TaskTemplate:
    """Active daily 09:00-09:30 UTC template with a 15-minute reminder."""
    fields = dict(
        id="tpl-1",
        title="Standup",
        base_time=BaseTime(
            start=datetime(2025, 1, 1, 9, 0, tzinfo=UTC),
            end=datetime(2025, 1, 1, 9, 30, tzinfo=UTC),
        ),
        recurrence=Daily(),
        reminder_config=ReminderConfig(
            alerts=(ReminderAlertConfig(id="alert-15", timing=RelativeTiming(15)),)
        ),
        status="active",
    )
    fields.update(overrides)
    return TaskTemplate(**fields)


@dataclass
class SentNotification:
    alert_id: str
    title: str
    body: str
    instance_id: str | None
    snooze_minutes: int | None = None


@dataclass
class FakeNotifier:
    """Records every notification; can be told to fail."""

    fail_with: str | None = None
    sent: list[SentNotification] = field(default_factory=list)

    async def notify(
        self,
        alert_id: str,
        title: str,
        body: str,
        instance_id: str | None = None,
        snooze_minutes: int | None = None,
    ) -> NotifyResult:
        self.sent.append(SentNotification(alert_id, title, body, instance_id, snooze_minutes))
        if self.fail_with:
            return NotifyResult(delivered=False, error=self.fail_with)
        return NotifyResult(delivered=True)


class ExplodingNotifier:
    """Raises instead of returning a result."""

    def __init__(self):
        self.calls = 0

    async def notify(self, alert_id, title, body, instance_id=None, snooze_minutes=None):
        self.calls += 1
        raise ConnectionError("network is down")
