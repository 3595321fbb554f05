from datetime import datetime, timedelta, timezone

import pytest

from planbook.models import UserPreferences
from scheduling.scheduler import Scheduler
from storage.event_store import EventStore
from storage.task_store import TaskStore

# Tuesday
NOW = datetime(2026, 3, 10, 10, 7, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def events(clock):
    return EventStore(clock=clock)


@pytest.fixture
def tasks(clock):
    return TaskStore(clock=clock)


@pytest.fixture
def scheduler(events, tasks, clock):
    return Scheduler(events, tasks, UserPreferences(), clock=clock)


@pytest.fixture
def at():
    """Build an aware UTC instant on the fixed test day."""
    def _at(hour: int, minute: int = 0, day: int = 10) -> datetime:
        return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)
    return _at
