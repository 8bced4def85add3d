"""Shared fixtures: a temporary SQLite store driven by a controllable clock."""

from datetime import datetime, timedelta, timezone

import pytest

from store import ReminderStore


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 1) -> datetime:
        self.current = self.current + timedelta(seconds=seconds)
        return self.current


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(tmp_path, clock):
    reminder_store = ReminderStore.open(f"sqlite:///{tmp_path / 'reminders.sqlite'}", clock=clock)
    yield reminder_store
    reminder_store.close()
