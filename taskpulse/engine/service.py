"""Task scheduling service.

One `TaskScheduleService` is built at startup and handed to whoever needs it
(the bot, the overdue sweep, tests). It wires the pure engine functions to a
repository and a `ReminderScheduler`.

User-facing workflows return an `OperationResult`; they never raise.
Scheduler bookkeeping problems are logged and otherwise ignored.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable

from taskpulse.db.models import (
    ACTIVE_INSTANCE_STATUSES,
    ReminderAlertConfig,
    TaskInstance,
    TaskTemplate,
)
from taskpulse.engine import alerts, lifecycle
from taskpulse.engine.instances import GenerateOptions, filter_conflicts
from taskpulse.engine.instances import generate_instances as generate
from taskpulse.engine.recurrence import next_occurrence, validate_rule
from taskpulse.engine.scheduler import FireOutcome, ReminderScheduler
from taskpulse.ports import Clock, Repository
from taskpulse.utils.constants import (
    DEFAULT_INSTANCE_COUNT,
    DEFAULT_WORKING_HOURS_END,
    DEFAULT_WORKING_HOURS_START,
    MAX_ALERTS_PER_TASK,
    MAX_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
)
from taskpulse.utils.error_handler import error_result
from taskpulse.utils.errors import (
    InvalidRuleError,
    InvalidTransitionError,
    NotFoundError,
    OperationResult,
)
from taskpulse.utils.time_utils import SystemClock

logger = logging.getLogger(__name__)

# Statuses whose reminders should be armed after a restart
RESTORABLE_STATUSES = ("pending", "inProgress", "overdue")


class TaskScheduleService:
    def __init__(
        self,
        repository: Repository,
        scheduler: ReminderScheduler,
        clock: Clock | None = None,
        holidays: Iterable = (),
        working_hours: tuple[str, str] = (DEFAULT_WORKING_HOURS_START, DEFAULT_WORKING_HOURS_END),
        instance_count: int = DEFAULT_INSTANCE_COUNT,
    ):
        self.repository = repository
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self.holidays = frozenset(holidays)
        self.working_hours = working_hours
        self.instance_count = instance_count

    # Lookups

    async def _get_template(self, template_id: str) -> TaskTemplate:
        template = await self.repository.get_template(template_id)
        if template is None:
            raise NotFoundError(f"template {template_id} does not exist")
        return template

    async def _get_instance(self, instance_id: str) -> TaskInstance:
        instance = await self.repository.get_instance(instance_id)
        if instance is None:
            raise NotFoundError(f"task instance {instance_id} does not exist")
        return instance

    # Core operations

    def compute_next_occurrence(
        self,
        rule,
        base_time: datetime,
        from_time: datetime | None = None,
        timezone: str | None = None,
    ):
        if from_time is None:
            from_time = self.clock.now()
        return next_occurrence(rule, base_time, from_time, timezone)

    def generate_instances(
        self,
        template: TaskTemplate,
        count: int | None = None,
        date_range=None,
    ) -> list[TaskInstance]:
        """Generate instances for an active template.

        Raises:
            InvalidTransitionError: The template is not active.
        """
        if template.status != "active":
            raise InvalidTransitionError(
                f"template '{template.title}' is {template.status}; only active templates generate tasks"
            )

        if count is None and date_range is None:
            count = self.instance_count

        options = GenerateOptions(
            count=count,
            date_range=date_range,
            holidays=self.holidays,
            working_hours=self.working_hours,
        )
        return generate(template, options, now=self.clock.now())

    async def register_reminders(self, instance: TaskInstance) -> int:
        return await self.scheduler.register_instance(instance)

    async def cancel_reminders(self, instance_id: str) -> int:
        return await self.scheduler.cancel_instance(instance_id)

    async def reinitialize_reminders(self, instances: Iterable[TaskInstance]) -> int:
        return await self.scheduler.reinitialize_all(instances)

    # Alert commands

    async def trigger_alert(self, instance_id: str, alert_id: str) -> OperationResult:
        """Fire an alert right away."""
        try:
            instance = await self._get_instance(instance_id)
            if instance.find_alert(alert_id) is None:
                raise NotFoundError(f"alert {alert_id} does not exist on this task")

            outcome: FireOutcome = await self.scheduler.trigger_now(instance_id, alert_id)
            if not outcome.fired:
                return OperationResult.fail("Reminder is not waiting to fire")
            if not outcome.delivered:
                return OperationResult(
                    success=False,
                    message=f"Reminder triggered but delivery failed: {outcome.error}",
                    data=outcome,
                )
            return OperationResult.ok("Reminder sent", outcome)
        except Exception as e:
            return error_result(e, "trigger the reminder")

    async def snooze_alert(
        self,
        instance_id: str,
        alert_id: str,
        until: datetime | None = None,
        reason: str | None = None,
    ) -> OperationResult:
        """Snooze a fired alert; defaults to the instance's snooze interval."""
        try:
            async with self.scheduler.instance_lock(instance_id):
                instance = await self._get_instance(instance_id)
                now = self.clock.now()

                if until is None:
                    minutes = instance.reminder_status.snooze.interval_minutes
                    until = now + timedelta(minutes=minutes)
                elif until <= now:
                    return OperationResult.fail("Snooze time must be in the future")

                if not alerts.snooze(instance, alert_id, until, reason, now):
                    return OperationResult.fail("This reminder can't be snoozed")

                await self.repository.update_instance(instance)
                await self.scheduler.arm_alert(instance_id, alert_id, until)
                return OperationResult.ok(f"Snoozed until {until.strftime('%H:%M')}", until)
        except Exception as e:
            return error_result(e, "snooze the reminder")

    async def dismiss_alert(self, instance_id: str, alert_id: str) -> OperationResult:
        try:
            async with self.scheduler.instance_lock(instance_id):
                instance = await self._get_instance(instance_id)

                if not alerts.dismiss(instance, alert_id, self.clock.now()):
                    return OperationResult.fail("This reminder can't be dismissed")

                await self.repository.update_instance(instance)
                await self.scheduler.disarm_alert(instance_id, alert_id)
                return OperationResult.ok("Reminder dismissed")
        except Exception as e:
            return error_result(e, "dismiss the reminder")

    # Template workflows

    async def create_template(self, template: TaskTemplate) -> OperationResult:
        """Validate and store a new (draft) template."""
        try:
            title = template.title.strip() if template.title else ""
            if not title:
                raise InvalidRuleError("a task needs a title")
            if len(title) > MAX_TITLE_LENGTH:
                raise InvalidRuleError(f"title is longer than {MAX_TITLE_LENGTH} characters")
            if template.description and len(template.description) > MAX_DESCRIPTION_LENGTH:
                raise InvalidRuleError(
                    f"description is longer than {MAX_DESCRIPTION_LENGTH} characters"
                )
            if len(template.reminder_config.alerts) > MAX_ALERTS_PER_TASK:
                raise InvalidRuleError(f"at most {MAX_ALERTS_PER_TASK} reminders per task")

            errors = validate_rule(template.recurrence)
            if errors:
                raise InvalidRuleError("; ".join(errors))

            base = template.base_time
            if base.end is not None and base.end <= base.start:
                raise InvalidRuleError("end time must be after start time")

            now = self.clock.now()
            template.title = title
            template.created_at = template.created_at or now
            template.updated_at = now

            await self.repository.save_template(template)
            logger.info(f"Created template {template.id} ('{template.title}')")
            return OperationResult.ok("Task created", template)
        except Exception as e:
            return error_result(e, "create the task")

    async def activate_template(
        self,
        template_id: str,
        count: int | None = None,
        avoid_conflicts: bool = False,
    ) -> OperationResult:
        """Activate a template, store its first instances and arm their reminders."""
        try:
            template = await self._get_template(template_id)
            now = self.clock.now()

            if template.status == "paused":
                # Its instances already exist
                lifecycle.resume_template(template, now)
                await self.repository.update_template(template)
                return OperationResult.ok("Task resumed", [])

            lifecycle.activate_template(template, now)
            instances = self.generate_instances(template, count=count)

            if avoid_conflicts:
                existing = await self.repository.list_instances(ACTIVE_INSTANCE_STATUSES)
                instances = filter_conflicts(instances, existing)

            await self.repository.save_instances(instances)

            template.total_instances += len(instances)
            if instances:
                template.last_instance_date = instances[-1].scheduled_time
            await self.repository.update_template(template)

            armed = 0
            for instance in instances:
                armed += await self.scheduler.register_instance(instance)

            logger.info(
                f"Activated template {template.id}: {len(instances)} instances, "
                f"{armed} reminders armed"
            )
            return OperationResult.ok(f"Task activated ({len(instances)} upcoming)", instances)
        except Exception as e:
            return error_result(e, "activate the task")

    async def pause_template(self, template_id: str) -> OperationResult:
        try:
            template = await self._get_template(template_id)
            lifecycle.pause_template(template, self.clock.now())
            await self.repository.update_template(template)
            return OperationResult.ok("Task paused", template)
        except Exception as e:
            return error_result(e, "pause the task")

    async def resume_template(self, template_id: str) -> OperationResult:
        try:
            template = await self._get_template(template_id)
            lifecycle.resume_template(template, self.clock.now())
            await self.repository.update_template(template)
            return OperationResult.ok("Task resumed", template)
        except Exception as e:
            return error_result(e, "resume the task")

    async def archive_template(self, template_id: str) -> OperationResult:
        try:
            template = await self._get_template(template_id)
            lifecycle.archive_template(template, self.clock.now())
            await self.repository.update_template(template)
            return OperationResult.ok("Task archived", template)
        except Exception as e:
            return error_result(e, "archive the task")

    async def delete_template(self, template_id: str, force: bool = False) -> OperationResult:
        """Delete a template together with its instances.

        Without `force`, a template that still has pending or in-progress
        instances is kept and the count is reported.
        """
        try:
            template = await self._get_template(template_id)
            instances = await self.repository.find_instances_by_template_id(template_id)

            deletable, active = lifecycle.can_delete(instances)
            if not deletable and not force:
                return OperationResult(
                    success=False,
                    message=f"Task has {active} active instance(s); delete with force to remove them",
                    data=active,
                )

            for instance in instances:
                await self.scheduler.cancel_instance(instance.id)

            await self.repository.delete_template(template_id)
            logger.info(f"Deleted template {template.id} and {len(instances)} instances")
            return OperationResult.ok("Task deleted", len(instances))
        except Exception as e:
            return error_result(e, "delete the task")

    # Instance workflows

    async def start_instance(self, instance_id: str) -> OperationResult:
        try:
            async with self.scheduler.instance_lock(instance_id):
                instance = await self._get_instance(instance_id)
                lifecycle.start_instance(instance, self.clock.now())
                await self.repository.update_instance(instance)
                return OperationResult.ok("Task started", instance)
        except Exception as e:
            return error_result(e, "start the task")

    async def complete_instance(self, instance_id: str) -> OperationResult:
        try:
            async with self.scheduler.instance_lock(instance_id):
                instance = await self._get_instance(instance_id)
                lifecycle.complete_instance(instance, self.clock.now())
                await self.repository.update_instance(instance)
                await self.scheduler.cancel_instance(instance_id)

                template = await self.repository.get_template(instance.template_id)
                if template is not None:
                    template.completed_instances += 1
                    template.updated_at = self.clock.now()
                    await self.repository.update_template(template)

                return OperationResult.ok("Task completed", instance)
        except Exception as e:
            return error_result(e, "complete the task")

    async def undo_complete_instance(self, instance_id: str) -> OperationResult:
        try:
            async with self.scheduler.instance_lock(instance_id):
                instance = await self._get_instance(instance_id)
                lifecycle.undo_complete(instance, self.clock.now())
                await self.repository.update_instance(instance)

                template = await self.repository.get_template(instance.template_id)
                if template is not None and template.completed_instances > 0:
                    template.completed_instances -= 1
                    await self.repository.update_template(template)

                return OperationResult.ok("Completion undone", instance)
        except Exception as e:
            return error_result(e, "undo the completion")

    async def cancel_instance(self, instance_id: str) -> OperationResult:
        try:
            async with self.scheduler.instance_lock(instance_id):
                instance = await self._get_instance(instance_id)
                lifecycle.cancel_instance(instance, self.clock.now())
                await self.repository.update_instance(instance)
                await self.scheduler.cancel_instance(instance_id)
                return OperationResult.ok("Task cancelled", instance)
        except Exception as e:
            return error_result(e, "cancel the task")

    async def reschedule_instance(
        self,
        instance_id: str,
        new_time: datetime,
        new_end_time: datetime | None = None,
    ) -> OperationResult:
        """Move an instance and re-arm its reminders for the new time."""
        try:
            async with self.scheduler.instance_lock(instance_id):
                instance = await self._get_instance(instance_id)
                moved = lifecycle.reschedule_instance(
                    instance, new_time, new_end_time, self.clock.now()
                )
                await self.repository.update_instance(instance)
                await self.scheduler.register_instance(instance)
                return OperationResult.ok(
                    f"Task rescheduled ({moved} reminder{'s' if moved != 1 else ''} moved)",
                    instance,
                )
        except Exception as e:
            return error_result(e, "reschedule the task")

    async def update_reminders(
        self,
        instance_id: str,
        enabled: bool,
        alert_configs: Iterable[ReminderAlertConfig] | None = None,
    ) -> OperationResult:
        try:
            async with self.scheduler.instance_lock(instance_id):
                instance = await self._get_instance(instance_id)
                configs = list(alert_configs) if alert_configs is not None else None
                if configs is not None and len(configs) > MAX_ALERTS_PER_TASK:
                    raise InvalidRuleError(f"at most {MAX_ALERTS_PER_TASK} reminders per task")

                lifecycle.update_reminders(instance, enabled, configs, self.clock.now())
                await self.repository.update_instance(instance)
                await self.scheduler.register_instance(instance)
                return OperationResult.ok("Reminders updated", instance)
        except Exception as e:
            return error_result(e, "update the reminders")

    # Maintenance

    async def restore_reminders(self) -> int:
        """Rebuild armed alerts from storage after a restart."""
        try:
            instances = await self.repository.list_instances(RESTORABLE_STATUSES)
        except Exception as e:
            logger.error(f"Could not load instances to restore reminders: {e}")
            return 0
        return await self.scheduler.reinitialize_all(instances)

    async def mark_overdue_instances(self) -> int:
        """Flag pending instances whose slot has passed."""
        now = self.clock.now()
        count = 0

        for listed in await self.repository.list_instances(("pending",)):
            if not lifecycle.is_past_due(listed, now):
                continue
            async with self.scheduler.instance_lock(listed.id):
                # Reload: a reminder may have fired since the listing
                instance = await self.repository.get_instance(listed.id)
                if instance is not None and lifecycle.mark_overdue(instance, now):
                    await self.repository.update_instance(instance)
                    count += 1

        if count:
            logger.info(f"Marked {count} task(s) overdue")
        return count
