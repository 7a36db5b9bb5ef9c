"""Tests for the task scheduling service workflows."""

import asyncio
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from fakes import FakeNotifier, make_template
from taskpulse.db.models import (
    Daily,
    EndAfterCount,
    RelativeTiming,
    ReminderAlertConfig,
    ReminderConfig,
)
from taskpulse.engine.scheduler import ReminderScheduler
from taskpulse.engine.service import TaskScheduleService
from taskpulse.utils.errors import InvalidTransitionError

UTC = ZoneInfo("UTC")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


async def activated(service, count=None, **overrides):
    """Create and activate a draft template; returns its instances."""
    await service.create_template(make_template(status="draft", **overrides))
    result = await service.activate_template("tpl-1", count=count)
    assert result.success, result.message
    return result.data


# Templates


@pytest.mark.asyncio
async def test_activate_generates_and_arms(service, repo, scheduler):
    instances = await activated(service)

    assert len(instances) == 10
    assert len(repo.instances) == 10
    assert scheduler.armed_count == 10

    [upcoming] = scheduler.upcoming(60)
    assert upcoming.instance_id == instances[0].id

    template = await repo.get_template("tpl-1")
    assert template.status == "active"
    assert template.total_instances == 10
    assert template.last_instance_date == utc(2025, 1, 10, 9, 0)


@pytest.mark.asyncio
async def test_activate_with_count(service):
    instances = await activated(service, count=3)

    assert [i.scheduled_time.day for i in instances] == [1, 2, 3]


@pytest.mark.asyncio
async def test_activate_respects_after_count(service):
    instances = await activated(service, recurrence=Daily(end=EndAfterCount(3)))

    assert len(instances) == 3


@pytest.mark.asyncio
async def test_activate_unknown_template(service):
    result = await service.activate_template("missing")

    assert not result.success
    assert result.message == "Not found: template missing does not exist"


@pytest.mark.asyncio
async def test_activate_twice_is_not_allowed(service):
    await activated(service)

    result = await service.activate_template("tpl-1")

    assert not result.success
    assert result.message.startswith("Not allowed:")


@pytest.mark.asyncio
async def test_create_rejects_bad_input(service, repo):
    bad_rule = await service.create_template(make_template(recurrence=Daily(interval=0)))
    no_title = await service.create_template(make_template(title="   "))

    assert bad_rule.message.startswith("Invalid configuration:")
    assert no_title.message == "Invalid configuration: a task needs a title"
    assert repo.templates == {}


def test_generate_requires_active_template(service):
    with pytest.raises(InvalidTransitionError):
        service.generate_instances(make_template(status="draft"))


@pytest.mark.asyncio
async def test_pause_then_activate_resumes(service, repo):
    await activated(service)
    await service.pause_template("tpl-1")

    result = await service.activate_template("tpl-1")

    assert result.success
    assert result.message == "Task resumed"
    assert len(repo.instances) == 10
    assert (await repo.get_template("tpl-1")).status == "active"


@pytest.mark.asyncio
async def test_delete_with_active_instances_needs_force(service, repo, scheduler):
    await activated(service, count=2)

    refused = await service.delete_template("tpl-1")
    assert not refused.success
    assert refused.data == 2
    assert "tpl-1" in repo.templates

    deleted = await service.delete_template("tpl-1", force=True)
    assert deleted.success
    assert repo.templates == {}
    assert repo.instances == {}
    assert scheduler.armed_count == 0


# Alerts


@pytest.mark.asyncio
async def test_trigger_snooze_dismiss(service, scheduler, notifier):
    [instance] = await activated(service, count=1)

    sent = await service.trigger_alert(instance.id, "alert-15")
    assert sent.success
    assert sent.message == "Reminder sent"
    assert len(notifier.sent) == 1

    snoozed = await service.snooze_alert(instance.id, "alert-15")
    assert snoozed.message == "Snoozed until 08:10"
    assert scheduler.is_armed(instance.id, "alert-15")

    dismissed = await service.dismiss_alert(instance.id, "alert-15")
    assert dismissed.success
    assert not scheduler.is_armed(instance.id, "alert-15")


@pytest.mark.asyncio
async def test_fourth_snooze_is_refused(service):
    [instance] = await activated(service, count=1)
    await service.trigger_alert(instance.id, "alert-15")

    for _ in range(3):
        assert (await service.snooze_alert(instance.id, "alert-15")).success

    result = await service.snooze_alert(instance.id, "alert-15")
    assert not result.success
    assert result.message == "This reminder can't be snoozed"


@pytest.mark.asyncio
async def test_snooze_into_the_past(service, clock):
    [instance] = await activated(service, count=1)
    await service.trigger_alert(instance.id, "alert-15")

    result = await service.snooze_alert(
        instance.id, "alert-15", until=clock.now() - timedelta(minutes=1)
    )

    assert result.message == "Snooze time must be in the future"


@pytest.mark.asyncio
async def test_trigger_twice(service):
    [instance] = await activated(service, count=1)
    await service.trigger_alert(instance.id, "alert-15")

    again = await service.trigger_alert(instance.id, "alert-15")

    assert not again.success
    assert again.message == "Reminder is not waiting to fire"


@pytest.mark.asyncio
async def test_trigger_unknown_alert(service):
    [instance] = await activated(service, count=1)

    result = await service.trigger_alert(instance.id, "nope")

    assert result.message.startswith("Not found:")


@pytest.mark.asyncio
async def test_trigger_reports_delivery_failure(repo, clock):
    scheduler = ReminderScheduler(repo, FakeNotifier(fail_with="blocked by user"), clock)
    service = TaskScheduleService(repo, scheduler, clock)
    [instance] = await activated(service, count=1)

    result = await service.trigger_alert(instance.id, "alert-15")

    assert not result.success
    assert "blocked by user" in result.message
    assert result.data.fired


# Instances


@pytest.mark.asyncio
async def test_reschedule_too_far_is_rejected(service, repo):
    [instance] = await activated(service, count=1)

    result = await service.reschedule_instance(
        instance.id, instance.scheduled_time + timedelta(days=8)
    )

    assert not result.success
    assert result.message == "Reschedule rejected: Cannot reschedule beyond 7 days"
    stored = await repo.get_instance(instance.id)
    assert stored.scheduled_time == instance.scheduled_time


@pytest.mark.asyncio
async def test_reschedule_rearms_reminders(service, scheduler):
    [instance] = await activated(service, count=1)

    result = await service.reschedule_instance(instance.id, utc(2025, 1, 1, 11, 0))

    assert result.message == "Task rescheduled (1 reminder moved)"
    assert scheduler.upcoming(60) == []
    [upcoming] = scheduler.upcoming(180)
    assert upcoming.fire_time == utc(2025, 1, 1, 10, 45)


@pytest.mark.asyncio
async def test_cancel_disarms(service, scheduler):
    [instance] = await activated(service, count=1)

    result = await service.cancel_instance(instance.id)

    assert result.success
    assert scheduler.armed_count == 0


@pytest.mark.asyncio
async def test_complete_counts_on_template(service, repo, scheduler):
    [instance] = await activated(service, count=1)

    assert (await service.start_instance(instance.id)).success
    assert (await service.complete_instance(instance.id)).success

    assert (await repo.get_template("tpl-1")).completed_instances == 1
    assert scheduler.armed_count == 0

    assert (await service.undo_complete_instance(instance.id)).success
    assert (await repo.get_template("tpl-1")).completed_instances == 0


@pytest.mark.asyncio
async def test_complete_cancelled_instance_fails(service):
    [instance] = await activated(service, count=1)
    await service.cancel_instance(instance.id)

    result = await service.complete_instance(instance.id)

    assert not result.success
    assert result.message.startswith("Not allowed:")


@pytest.mark.asyncio
async def test_disabling_reminders_disarms(service, scheduler):
    [instance] = await activated(service, count=1)

    result = await service.update_reminders(instance.id, enabled=False)

    assert result.success
    assert not scheduler.is_armed(instance.id, "alert-15")


# Maintenance


@pytest.mark.asyncio
async def test_restore_reminders_after_restart(service, repo, notifier, clock):
    await activated(service, count=3)

    fresh = TaskScheduleService(repo, ReminderScheduler(repo, notifier, clock), clock)

    assert await fresh.restore_reminders() == 3
    assert fresh.scheduler.armed_count == 3


@pytest.mark.asyncio
async def test_mark_overdue_instances(service, repo, clock):
    instances = await activated(service, count=2)
    clock.set(utc(2025, 1, 1, 9, 31))

    assert await service.mark_overdue_instances() == 1
    assert (await repo.get_instance(instances[0].id)).status == "overdue"
    assert (await repo.get_instance(instances[1].id)).status == "pending"
    assert await service.mark_overdue_instances() == 0


def test_compute_next_occurrence(service):
    base = utc(2025, 1, 1, 9, 0)

    assert service.compute_next_occurrence(Daily(), base) == base
    assert service.compute_next_occurrence(Daily(), base, base) == utc(2025, 1, 2, 9, 0)


@pytest.mark.asyncio
async def test_reminder_registration_operations(service, scheduler):
    template = make_template()
    [first, second] = service.generate_instances(template, count=2)

    assert await service.register_reminders(first) == 1
    assert await service.register_reminders(first) == 1
    assert scheduler.armed_count == 1

    assert await service.reinitialize_reminders([first, second]) == 2
    assert await service.cancel_reminders(first.id) == 1
    assert scheduler.is_armed(second.id, "alert-15")


@pytest.mark.asyncio
async def test_dismiss_while_sibling_fires_keeps_both(db_repo, notifier, clock):
    scheduler = ReminderScheduler(db_repo, notifier, clock)
    service = TaskScheduleService(db_repo, scheduler, clock)
    two_alerts = ReminderConfig(
        alerts=(
            ReminderAlertConfig(id="alert-15", timing=RelativeTiming(15)),
            ReminderAlertConfig(id="alert-5", timing=RelativeTiming(5)),
        )
    )
    [instance] = await activated(service, count=1, reminder_config=two_alerts)
    await service.trigger_alert(instance.id, "alert-15")

    dismissed, fired = await asyncio.gather(
        service.dismiss_alert(instance.id, "alert-15"),
        scheduler.trigger_now(instance.id, "alert-5"),
    )

    assert dismissed.success
    assert fired.fired
    stored = await db_repo.get_instance(instance.id)
    assert stored.find_alert("alert-15").status == "dismissed"
    assert stored.find_alert("alert-5").status == "triggered"
