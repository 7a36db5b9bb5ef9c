"""In-memory repository with the same interface as the SQLite one."""

import copy
from typing import Iterable

from taskpulse.db.models import InstanceStatus, TaskInstance, TaskTemplate


class InMemoryRepository:
    """Stores deep copies, so callers never share state with the store."""

    def __init__(self):
        self.templates: dict[str, TaskTemplate] = {}
        self.instances: dict[str, TaskInstance] = {}

    # Templates

    async def save_template(self, template: TaskTemplate) -> None:
        self.templates[template.id] = copy.deepcopy(template)

    async def update_template(self, template: TaskTemplate) -> None:
        if template.id in self.templates:
            self.templates[template.id] = copy.deepcopy(template)

    async def delete_template(self, template_id: str) -> None:
        self.templates.pop(template_id, None)
        for instance_id in [
            i.id for i in self.instances.values() if i.template_id == template_id
        ]:
            del self.instances[instance_id]

    async def get_template(self, template_id: str) -> TaskTemplate | None:
        template = self.templates.get(template_id)
        return copy.deepcopy(template) if template else None

    async def list_templates(self, status: str | None = None) -> list[TaskTemplate]:
        return [
            copy.deepcopy(t)
            for t in self.templates.values()
            if status is None or t.status == status
        ]

    # Instances

    async def save_instance(self, instance: TaskInstance) -> None:
        self.instances[instance.id] = copy.deepcopy(instance)

    async def save_instances(self, instances: Iterable[TaskInstance]) -> None:
        for instance in instances:
            await self.save_instance(instance)

    async def update_instance(self, instance: TaskInstance) -> None:
        if instance.id in self.instances:
            self.instances[instance.id] = copy.deepcopy(instance)

    async def delete_instance(self, instance_id: str) -> None:
        self.instances.pop(instance_id, None)

    async def get_instance(self, instance_id: str) -> TaskInstance | None:
        instance = self.instances.get(instance_id)
        return copy.deepcopy(instance) if instance else None

    async def find_instances_by_template_id(self, template_id: str) -> list[TaskInstance]:
        found = [i for i in self.instances.values() if i.template_id == template_id]
        return [copy.deepcopy(i) for i in sorted(found, key=lambda i: i.scheduled_time)]

    async def list_instances(
        self, statuses: Iterable[InstanceStatus] | None = None
    ) -> list[TaskInstance]:
        wanted = set(statuses) if statuses is not None else None
        found = [
            i for i in self.instances.values() if wanted is None or i.status in wanted
        ]
        return [copy.deepcopy(i) for i in sorted(found, key=lambda i: i.scheduled_time)]
