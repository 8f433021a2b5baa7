# tests/conftest.py

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from ids import Clock
from models import TaskInput
from storage import MemoryStorage, StateRepository
from store import TaskStore

START = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 2)


class FakeClock(Clock):
    """
    Deterministic clock for unit tests.

    Time only moves when a test calls advance(); stamp() keeps the real
    clock's "strictly later than previous" rule so ordering stays testable.
    """

    def __init__(self, now: datetime = START, today: Optional[date] = None):
        self._now = now
        self._today = today or now.date()

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._today

    def advance(self, **delta) -> None:
        step = timedelta(**delta)
        self._now += step
        self._today = self._now.date()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def repository(storage: MemoryStorage) -> StateRepository:
    return StateRepository(storage)


@pytest.fixture()
def store(repository: StateRepository, clock: FakeClock) -> TaskStore:
    return TaskStore(repository, clock=clock)


@pytest.fixture()
def make_store(clock: FakeClock) -> Callable[..., TaskStore]:
    """Build a store over the given storage (fresh MemoryStorage by default)."""

    def _make(storage: Optional[MemoryStorage] = None) -> TaskStore:
        return TaskStore(StateRepository(storage if storage is not None else MemoryStorage()),
                         clock=clock)

    return _make


@pytest.fixture()
def add(store: TaskStore) -> Callable[..., str]:
    """Shortcut: add a task and return its id."""

    def _add(title: str, **fields) -> str:
        return store.add_task(TaskInput(title=title, **fields)).id

    return _add
