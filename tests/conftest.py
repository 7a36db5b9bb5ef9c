"""Shared fixtures."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from fakes import FakeNotifier
from taskpulse.db.memory import InMemoryRepository
from taskpulse.db.migrations import run_migrations
from taskpulse.db.repository import Repository
from taskpulse.engine.scheduler import ReminderScheduler
from taskpulse.engine.service import TaskScheduleService
from taskpulse.utils.time_utils import FixedClock


@pytest.fixture()
def clock() -> FixedClock:
    """Clock frozen at 2025-01-01 08:00 UTC."""
    return FixedClock(datetime(2025, 1, 1, 8, 0, tzinfo=ZoneInfo("UTC")))


@pytest.fixture()
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest_asyncio.fixture()
async def db_repo(tmp_path):
    """Migrated SQLite repository in a temporary file."""
    db_path = tmp_path / "taskpulse.db"
    await run_migrations(db_path)
    repo = Repository(db_path)
    await repo.connect()
    yield repo
    await repo.close()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def scheduler(repo, notifier, clock) -> ReminderScheduler:
    return ReminderScheduler(repo, notifier, clock)


@pytest.fixture()
def service(repo, scheduler, clock) -> TaskScheduleService:
    return TaskScheduleService(repo, scheduler, clock)
