"""Tests for the reminder scheduler."""

import asyncio
from dataclasses import replace
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from fakes import ExplodingNotifier, FakeNotifier, make_template
from taskpulse.db.models import (
    AbsoluteTiming,
    RelativeTiming,
    ReminderAlertConfig,
    ReminderConfig,
    SnoozeConfig,
)
from taskpulse.engine import alerts
from taskpulse.engine.instances import create_instance_from_template
from taskpulse.engine.scheduler import ReminderScheduler

UTC = ZoneInfo("UTC")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def two_alert_template():
    return make_template(
        reminder_config=ReminderConfig(
            alerts=(
                ReminderAlertConfig(id="alert-15", timing=RelativeTiming(15)),
                ReminderAlertConfig(id="alert-5", timing=RelativeTiming(5)),
            )
        )
    )


async def stored_instance(repo, template=None, scheduled_time=None):
    instance = create_instance_from_template(
        template or make_template(), scheduled_time, now=utc(2025, 1, 1, 7, 0)
    )
    await repo.save_instance(instance)
    return instance


# Registration


@pytest.mark.asyncio
async def test_register_arms_future_alert(scheduler, repo):
    instance = await stored_instance(repo)

    assert await scheduler.register_instance(instance) == 1

    [upcoming] = scheduler.upcoming(60)
    assert upcoming.alert_id == "alert-15"
    assert upcoming.fire_time == utc(2025, 1, 1, 8, 45)
    assert upcoming.minutes_until == 45
    assert scheduler.upcoming(30) == []


@pytest.mark.asyncio
async def test_past_alerts_are_never_armed(scheduler, repo, clock):
    instance = await stored_instance(repo)
    clock.set(utc(2025, 1, 1, 8, 50))

    assert await scheduler.register_instance(instance) == 0
    assert not scheduler.is_armed(instance.id, "alert-15")


@pytest.mark.asyncio
async def test_cancel_disarms_every_alert(scheduler, repo):
    instance = await stored_instance(repo, two_alert_template())
    await scheduler.register_instance(instance)
    assert scheduler.armed_count == 2

    assert await scheduler.cancel_instance(instance.id) == 2

    assert scheduler.upcoming(60) == []
    assert await scheduler.cancel_instance(instance.id) == 0


@pytest.mark.asyncio
async def test_register_twice_keeps_one_entry(scheduler, repo, notifier, clock):
    instance = await stored_instance(repo)
    await scheduler.register_instance(instance)
    await scheduler.register_instance(instance)

    assert scheduler.armed_count == 1

    clock.set(utc(2025, 1, 1, 8, 45))
    await scheduler.dispatch_due()
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_skips_terminal_and_disabled_instances(scheduler, repo):
    cancelled = await stored_instance(repo)
    cancelled.status = "cancelled"
    muted = await stored_instance(repo)
    alerts.disable(muted, utc(2025, 1, 1, 8, 0))

    assert await scheduler.register_instance(cancelled) == 0
    assert await scheduler.register_instance(muted) == 0


@pytest.mark.asyncio
async def test_snoozed_alert_is_armed(scheduler, repo):
    instance = await stored_instance(repo)
    alerts.trigger(instance, "alert-15", utc(2025, 1, 1, 7, 45))
    alerts.snooze(instance, "alert-15", utc(2025, 1, 1, 8, 10), now=utc(2025, 1, 1, 7, 45))

    await scheduler.register_instance(instance)

    [upcoming] = scheduler.upcoming(60)
    assert upcoming.fire_time == utc(2025, 1, 1, 8, 10)


@pytest.mark.asyncio
async def test_reinitialize_replaces_armed_set(scheduler, repo):
    first = await stored_instance(repo)
    second = await stored_instance(repo, scheduled_time=utc(2025, 1, 1, 10, 0))
    await scheduler.register_instance(first)

    total = await scheduler.reinitialize_all([second])

    assert total == 1
    assert not scheduler.is_armed(first.id, "alert-15")
    assert scheduler.is_armed(second.id, "alert-15")


@pytest.mark.asyncio
async def test_arm_alert_refuses_past_times(scheduler):
    assert not await scheduler.arm_alert("i-1", "a-1", utc(2025, 1, 1, 7, 59))
    assert await scheduler.arm_alert("i-1", "a-1", utc(2025, 1, 1, 8, 30))
    assert scheduler.is_armed("i-1", "a-1")


@pytest.mark.asyncio
async def test_rearming_does_not_grow_the_heap(scheduler, repo, notifier, clock):
    instance = await stored_instance(repo)

    for _ in range(1000):
        await scheduler.register_instance(instance)

    assert scheduler.armed_count == 1
    assert scheduler.heap_size <= 20

    clock.set(utc(2025, 1, 1, 8, 45))
    assert len(await scheduler.dispatch_due()) == 1
    assert len(notifier.sent) == 1


# Firing


@pytest.mark.asyncio
async def test_dispatch_delivers_and_marks_triggered(scheduler, repo, notifier, clock):
    instance = await stored_instance(repo)
    await scheduler.register_instance(instance)

    clock.set(utc(2025, 1, 1, 8, 45))
    [outcome] = await scheduler.dispatch_due()

    assert outcome.fired and outcome.delivered
    [sent] = notifier.sent
    assert sent.alert_id == "alert-15"
    assert sent.instance_id == instance.id
    assert sent.title == "Task reminder: Standup"
    assert sent.body == "Standup starts in 15 minutes (09:00)"
    assert sent.snooze_minutes == 10

    stored = await repo.get_instance(instance.id)
    assert stored.find_alert("alert-15").status == "triggered"
    assert await scheduler.dispatch_due() == []


@pytest.mark.asyncio
async def test_nothing_fires_early(scheduler, repo, notifier, clock):
    instance = await stored_instance(repo)
    await scheduler.register_instance(instance)

    clock.set(utc(2025, 1, 1, 8, 44))

    assert await scheduler.dispatch_due() == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_custom_message_replaces_body(scheduler, repo, notifier, clock):
    config = ReminderAlertConfig(id="alert-15", timing=RelativeTiming(15), message="Grab coffee")
    template = make_template(reminder_config=ReminderConfig(alerts=(config,)))
    instance = await stored_instance(repo, template)
    await scheduler.register_instance(instance)

    clock.set(utc(2025, 1, 1, 8, 45))
    await scheduler.dispatch_due()

    assert notifier.sent[0].body == "Grab coffee"


@pytest.mark.asyncio
async def test_failed_delivery_is_reported(repo, clock):
    notifier = FakeNotifier(fail_with="chat not found")
    scheduler = ReminderScheduler(repo, notifier, clock)
    instance = await stored_instance(repo)
    await scheduler.register_instance(instance)

    clock.set(utc(2025, 1, 1, 8, 45))
    [outcome] = await scheduler.dispatch_due()

    assert outcome.fired
    assert not outcome.delivered
    assert outcome.error == "chat not found"
    stored = await repo.get_instance(instance.id)
    assert stored.find_alert("alert-15").status == "triggered"


@pytest.mark.asyncio
async def test_notifier_exception_does_not_escape(repo, clock):
    notifier = ExplodingNotifier()
    scheduler = ReminderScheduler(repo, notifier, clock)
    instance = await stored_instance(repo)
    await scheduler.register_instance(instance)

    clock.set(utc(2025, 1, 1, 8, 45))
    [outcome] = await scheduler.dispatch_due()

    assert notifier.calls == 1
    assert not outcome.delivered
    assert outcome.error == "network is down"


@pytest.mark.asyncio
async def test_cancelled_instance_is_not_notified(scheduler, repo, notifier, clock):
    instance = await stored_instance(repo)
    await scheduler.register_instance(instance)
    await repo.update_instance(replace(instance, status="cancelled"))

    clock.set(utc(2025, 1, 1, 8, 45))
    [outcome] = await scheduler.dispatch_due()

    assert not outcome.fired
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_missing_instance(scheduler, notifier, clock):
    instance = create_instance_from_template(make_template(), now=utc(2025, 1, 1, 7, 0))
    await scheduler.register_instance(instance)  # never stored

    clock.set(utc(2025, 1, 1, 8, 45))
    [outcome] = await scheduler.dispatch_due()

    assert outcome.error == "instance not found"
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_trigger_now_fires_early_and_disarms(scheduler, repo, notifier):
    instance = await stored_instance(repo)
    await scheduler.register_instance(instance)

    outcome = await scheduler.trigger_now(instance.id, "alert-15")

    assert outcome.delivered
    assert notifier.sent[0].body == "Standup starts in 1 hour (09:00)"
    assert not scheduler.is_armed(instance.id, "alert-15")


# Dispatch loop


@pytest.mark.asyncio
async def test_run_loop_fires_due_alerts(scheduler, repo, notifier, clock):
    first = await stored_instance(repo)
    await scheduler.register_instance(first)
    scheduler.start()

    clock.set(utc(2025, 1, 1, 8, 45))
    # Registering wakes the loop, which then sees the 08:45 alert as due
    later = await stored_instance(repo, scheduled_time=utc(2025, 1, 2, 9, 0))
    await scheduler.register_instance(later)

    for _ in range(100):
        if notifier.sent:
            break
        await asyncio.sleep(0.01)

    await scheduler.stop()

    assert [n.instance_id for n in notifier.sent] == [first.id]
    assert scheduler.is_armed(later.id, "alert-15")


# Concurrent updates of one instance


def same_time_template():
    return make_template(
        reminder_config=ReminderConfig(
            alerts=(
                ReminderAlertConfig(id="a", timing=RelativeTiming(15)),
                ReminderAlertConfig(id="b", timing=AbsoluteTiming(utc(2025, 1, 1, 8, 45))),
            )
        )
    )


@pytest.mark.asyncio
async def test_sibling_alerts_firing_together_both_persist(db_repo, notifier, clock):
    scheduler = ReminderScheduler(db_repo, notifier, clock)
    instance = await stored_instance(db_repo, same_time_template())
    await scheduler.register_instance(instance)

    clock.set(utc(2025, 1, 1, 8, 45))
    outcomes = await asyncio.gather(
        scheduler.trigger_now(instance.id, "a"),
        scheduler.trigger_now(instance.id, "b"),
    )

    assert all(outcome.fired for outcome in outcomes)
    stored = await db_repo.get_instance(instance.id)
    assert {a.id: a.status for a in stored.reminder_status.alerts} == {
        "a": "triggered",
        "b": "triggered",
    }


@pytest.mark.asyncio
async def test_run_loop_fires_sibling_alerts_without_losing_state(db_repo, notifier, clock):
    scheduler = ReminderScheduler(db_repo, notifier, clock)
    instance = await stored_instance(db_repo, same_time_template())
    await scheduler.register_instance(instance)

    clock.set(utc(2025, 1, 1, 8, 45))
    scheduler.start()
    for _ in range(100):
        if len(notifier.sent) == 2:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    stored = await db_repo.get_instance(instance.id)
    assert [a.status for a in stored.reminder_status.alerts] == ["triggered", "triggered"]


@pytest.mark.asyncio
async def test_snooze_button_follows_instance_settings(scheduler, repo, notifier):
    template = make_template(
        reminder_config=ReminderConfig(
            alerts=(ReminderAlertConfig(id="alert-15", timing=RelativeTiming(15)),),
            snooze=SnoozeConfig(enabled=False),
        )
    )
    instance = await stored_instance(repo, template)

    await scheduler.trigger_now(instance.id, "alert-15")

    assert notifier.sent[0].snooze_minutes is None
