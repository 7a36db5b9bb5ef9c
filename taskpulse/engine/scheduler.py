"""Reminder scheduler - arms alerts and fires them when due.

All armed alerts live in one min-heap keyed by fire time, drained by a
single dispatch loop. Disarming doesn't touch the heap: each armed alert
holds a token, and heap entries whose token no longer matches are skipped
when they surface. The heap is rebuilt from the armed entries when
stale ones pile up.

The scheduler only knows (instance id, alert id, fire time). Alert state
belongs to the instance and is reloaded from the repository on fire.
Loading, changing and saving an instance happens under that instance's
lock (`instance_lock`), which the service shares.
"""

import asyncio
import heapq
import itertools
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from taskpulse.db.models import TERMINAL_INSTANCE_STATUSES, TaskInstance
from taskpulse.engine import alerts
from taskpulse.engine.reminders import build_reminder_message
from taskpulse.ports import Clock, InstanceRepository, Notifier, NotifyResult
from taskpulse.utils.time_utils import SystemClock

logger = logging.getLogger(__name__)

# Upper bound on one idle wait, so a wall-clock jump is noticed
MAX_SLEEP_SECONDS = 60.0

# Rebuild the heap once stale entries outnumber live ones by this much
HEAP_SLACK = 16


@dataclass(frozen=True)
class ArmedAlert:
    instance_id: str
    alert_id: str
    fire_time: datetime


@dataclass(frozen=True)
class UpcomingReminder:
    instance_id: str
    alert_id: str
    fire_time: datetime
    minutes_until: int


@dataclass(frozen=True)
class FireOutcome:
    """What happened when an armed alert came due."""

    instance_id: str
    alert_id: str
    fired: bool
    delivered: bool = False
    error: str | None = None


class ReminderScheduler:
    """Owns at most one armed entry per (instance, alert)."""

    def __init__(
        self,
        instances: InstanceRepository,
        notifier: Notifier,
        clock: Clock | None = None,
    ):
        self._instances = instances
        self._notifier = notifier
        self._clock = clock or SystemClock()

        self._heap: list[tuple[datetime, int, str, str]] = []
        self._armed: dict[tuple[str, str], tuple[ArmedAlert, int]] = {}
        self._by_instance: dict[str, set[str]] = {}
        self._tokens = itertools.count()

        self._lock = asyncio.Lock()
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._deliveries: set[asyncio.Task] = set()
        self._instance_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # Bookkeeping (caller holds the lock)

    def _arm(self, instance_id: str, alert_id: str, fire_time: datetime) -> None:
        token = next(self._tokens)
        armed = ArmedAlert(instance_id, alert_id, fire_time)
        self._armed[(instance_id, alert_id)] = (armed, token)
        self._by_instance.setdefault(instance_id, set()).add(alert_id)
        heapq.heappush(self._heap, (fire_time, token, instance_id, alert_id))
        if len(self._heap) > 2 * len(self._armed) + HEAP_SLACK:
            self._compact()

    def _compact(self) -> None:
        self._heap = [
            (armed.fire_time, token, armed.instance_id, armed.alert_id)
            for armed, token in self._armed.values()
        ]
        heapq.heapify(self._heap)

    def _disarm(self, instance_id: str, alert_id: str) -> bool:
        if self._armed.pop((instance_id, alert_id), None) is None:
            return False
        alert_ids = self._by_instance.get(instance_id)
        if alert_ids is not None:
            alert_ids.discard(alert_id)
            if not alert_ids:
                del self._by_instance[instance_id]
        return True

    def _disarm_instance(self, instance_id: str) -> int:
        alert_ids = list(self._by_instance.get(instance_id, ()))
        for alert_id in alert_ids:
            self._disarm(instance_id, alert_id)
        return len(alert_ids)

    def _register(self, instance: TaskInstance, now: datetime) -> int:
        self._disarm_instance(instance.id)

        if instance.status in TERMINAL_INSTANCE_STATUSES:
            return 0
        if not instance.reminder_status.enabled:
            logger.debug(f"Reminders disabled for instance {instance.id}; nothing armed")
            return 0

        count = 0
        for alert in instance.reminder_status.alerts:
            if alert.status not in ("pending", "snoozed"):
                continue
            if alert.scheduled_time <= now:
                logger.warning(
                    f"Dropping stale reminder {alert.id} for instance {instance.id} "
                    f"(was due {alert.scheduled_time.isoformat()})"
                )
                continue
            self._arm(instance.id, alert.id, alert.scheduled_time)
            count += 1
        return count

    def _pop_due(self, now: datetime) -> list[ArmedAlert]:
        due = []
        while self._heap and self._heap[0][0] <= now:
            _, token, instance_id, alert_id = heapq.heappop(self._heap)
            entry = self._armed.get((instance_id, alert_id))
            if entry is None or entry[1] != token:
                continue  # Disarmed or re-armed since
            self._disarm(instance_id, alert_id)
            due.append(entry[0])
        return due

    # Registration

    async def register_instance(self, instance: TaskInstance) -> int:
        """Arm every future pending/snoozed alert of an instance.

        Anything already armed for the instance is disarmed first, so
        registering twice never leaves two entries for one alert.

        Returns:
            Number of alerts armed
        """
        async with self._lock:
            count = self._register(instance, self._clock.now())
        self._wakeup.set()
        logger.debug(f"Armed {count} reminders for instance {instance.id}")
        return count

    async def cancel_instance(self, instance_id: str) -> int:
        """Disarm everything armed for an instance. Safe to repeat."""
        async with self._lock:
            count = self._disarm_instance(instance_id)
        if count:
            logger.debug(f"Disarmed {count} reminders for instance {instance_id}")
        return count

    async def reinitialize_all(self, instances: Iterable[TaskInstance]) -> int:
        """Drop every armed alert and rebuild from `instances`."""
        async with self._lock:
            self._heap.clear()
            self._armed.clear()
            self._by_instance.clear()

            now = self._clock.now()
            total = sum(self._register(instance, now) for instance in instances)

        self._wakeup.set()
        logger.info(f"Reminder scheduler reinitialized: {total} alerts armed")
        return total

    async def arm_alert(self, instance_id: str, alert_id: str, fire_time: datetime) -> bool:
        """Arm (or re-arm) a single alert. Past fire times are refused."""
        async with self._lock:
            if fire_time <= self._clock.now():
                logger.warning(
                    f"Refusing to arm reminder {alert_id} for instance {instance_id}: "
                    f"{fire_time.isoformat()} is not in the future"
                )
                return False
            self._disarm(instance_id, alert_id)
            self._arm(instance_id, alert_id, fire_time)
        self._wakeup.set()
        return True

    async def disarm_alert(self, instance_id: str, alert_id: str) -> bool:
        async with self._lock:
            return self._disarm(instance_id, alert_id)

    def instance_lock(self, instance_id: str) -> asyncio.Lock:
        """Lock held while an instance is loaded, changed and saved.

        Never taken while holding the scheduler's own lock.
        """
        lock = self._instance_locks.get(instance_id)
        if lock is None:
            lock = asyncio.Lock()
            self._instance_locks[instance_id] = lock
        return lock

    # Queries

    def is_armed(self, instance_id: str, alert_id: str) -> bool:
        return (instance_id, alert_id) in self._armed

    @property
    def armed_count(self) -> int:
        return len(self._armed)

    @property
    def heap_size(self) -> int:
        return len(self._heap)

    def upcoming(self, within_minutes: int = 60) -> list[UpcomingReminder]:
        """Armed alerts firing within the next `within_minutes`, soonest first."""
        now = self._clock.now()
        horizon = now + timedelta(minutes=within_minutes)

        result = [
            UpcomingReminder(
                instance_id=armed.instance_id,
                alert_id=armed.alert_id,
                fire_time=armed.fire_time,
                minutes_until=max(0, int((armed.fire_time - now).total_seconds() // 60)),
            )
            for armed, _ in self._armed.values()
            if armed.fire_time <= horizon
        ]
        result.sort(key=lambda r: r.fire_time)
        return result

    # Firing

    async def dispatch_due(self) -> list[FireOutcome]:
        """Fire every alert that is due now and wait for the deliveries."""
        async with self._lock:
            due = self._pop_due(self._clock.now())

        outcomes = []
        for armed in due:
            outcomes.append(await self._fire(armed))
        return outcomes

    async def trigger_now(self, instance_id: str, alert_id: str) -> FireOutcome:
        """Fire an alert immediately, whether or not it is armed."""
        await self.disarm_alert(instance_id, alert_id)
        return await self._fire(ArmedAlert(instance_id, alert_id, self._clock.now()))

    async def _fire(self, armed: ArmedAlert) -> FireOutcome:
        try:
            return await self._deliver(armed)
        except Exception as e:
            logger.error(
                f"Error firing reminder {armed.alert_id} for instance {armed.instance_id}: {e}"
            )
            return FireOutcome(armed.instance_id, armed.alert_id, fired=False, error=str(e))

    async def _deliver(self, armed: ArmedAlert) -> FireOutcome:
        async with self.instance_lock(armed.instance_id):
            instance = await self._instances.get_instance(armed.instance_id)
            if instance is None:
                logger.warning(f"Instance {armed.instance_id} vanished before its reminder fired")
                return FireOutcome(
                    armed.instance_id, armed.alert_id, fired=False, error="instance not found"
                )

            if instance.status in TERMINAL_INSTANCE_STATUSES or not instance.reminder_status.enabled:
                return FireOutcome(armed.instance_id, armed.alert_id, fired=False)

            now = self._clock.now()
            if not alerts.trigger(instance, armed.alert_id, now):
                # Dismissed or already fired: a late timer is a no-op
                logger.debug(f"Reminder {armed.alert_id} is no longer waiting; skipped")
                return FireOutcome(armed.instance_id, armed.alert_id, fired=False)

            # The triggered state is the source of truth, persist it before delivery
            await self._instances.update_instance(instance)

        alert = instance.find_alert(armed.alert_id)
        title, body = build_reminder_message(instance, alert, now)

        snooze = instance.reminder_status.snooze
        try:
            result = await self._notifier.notify(
                armed.alert_id,
                title,
                body,
                instance_id=instance.id,
                snooze_minutes=snooze.interval_minutes if snooze.enabled else None,
            )
        except Exception as e:
            result = NotifyResult(delivered=False, error=str(e))

        if result.delivered:
            logger.info(f"Sent reminder {armed.alert_id} for instance {instance.id}")
        else:
            logger.error(
                f"Failed to deliver reminder {armed.alert_id} for instance {instance.id}: "
                f"{result.error}"
            )

        return FireOutcome(
            armed.instance_id,
            armed.alert_id,
            fired=True,
            delivered=result.delivered,
            error=result.error,
        )

    # Dispatch loop

    def _spawn(self, armed: ArmedAlert) -> None:
        task = asyncio.create_task(self._fire(armed))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    def _seconds_until_next(self, now: datetime) -> float:
        if not self._heap:
            return MAX_SLEEP_SECONDS
        delay = (self._heap[0][0] - now).total_seconds()
        return min(max(delay, 0.0), MAX_SLEEP_SECONDS)

    async def run(self) -> None:
        """Fire alerts as they come due until cancelled."""
        logger.info("Reminder scheduler running")

        while True:
            self._wakeup.clear()

            async with self._lock:
                now = self._clock.now()
                due = self._pop_due(now)
                delay = self._seconds_until_next(now)

            for armed in due:
                self._spawn(armed)

            if due:
                continue

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop the dispatch loop and let in-flight deliveries finish."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._deliveries:
            await asyncio.gather(*self._deliveries, return_exceptions=True)

        logger.info("Reminder scheduler stopped")
