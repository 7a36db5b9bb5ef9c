"""Interfaces the scheduling core depends on.

The engine and service talk to storage, notification delivery and the clock
through these Protocols, so the aiosqlite repository, the Telegram notifier
and the system clock can be swapped for in-memory versions in tests.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from taskpulse.db.models import InstanceStatus, TaskInstance, TaskTemplate


@dataclass(frozen=True)
class NotifyResult:
    """Outcome of one notification hand-off."""

    delivered: bool
    error: str | None = None


class Clock(Protocol):
    def now(self) -> datetime: ...


class Notifier(Protocol):
    """Delivers a fired reminder to the user.

    `snooze_minutes` is None when the instance can't be snoozed.
    """

    async def notify(
        self,
        alert_id: str,
        title: str,
        body: str,
        instance_id: str | None = None,
        snooze_minutes: int | None = None,
    ) -> NotifyResult: ...


class TemplateRepository(Protocol):
    async def save_template(self, template: TaskTemplate) -> None: ...

    async def update_template(self, template: TaskTemplate) -> None: ...

    async def delete_template(self, template_id: str) -> None: ...

    async def get_template(self, template_id: str) -> TaskTemplate | None: ...

    async def list_templates(self, status: str | None = None) -> list[TaskTemplate]: ...


class InstanceRepository(Protocol):
    async def save_instance(self, instance: TaskInstance) -> None: ...

    async def save_instances(self, instances: Iterable[TaskInstance]) -> None: ...

    async def update_instance(self, instance: TaskInstance) -> None: ...

    async def delete_instance(self, instance_id: str) -> None: ...

    async def get_instance(self, instance_id: str) -> TaskInstance | None: ...

    async def find_instances_by_template_id(self, template_id: str) -> list[TaskInstance]: ...

    async def list_instances(
        self, statuses: Iterable[InstanceStatus] | None = None
    ) -> list[TaskInstance]: ...


class Repository(TemplateRepository, InstanceRepository, Protocol):
    """Both aggregates behind one store."""
