from __future__ import annotations

import asyncio
import datetime
from zoneinfo import ZoneInfo

import pytest
from workout_core.models import WorkoutRecord
from workout_core.store import QueryPage, StoreQueryFailed
from workout_core.workout_list import WorkoutList

UTC = ZoneInfo("UTC")
BASE = datetime.datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def make_workout(
    n: int,
    activity_type: str = "running",
    *,
    start: datetime.datetime | None = None,
    minutes: int = 30,
) -> WorkoutRecord:
    """Workout ``w<n>`` starting ``n`` hours after BASE unless ``start`` is given."""
    start = start or BASE + datetime.timedelta(hours=n)
    return WorkoutRecord(
        uuid=f"w{n}",
        start_time=start,
        end_time=start + datetime.timedelta(minutes=minutes),
        activity_type=activity_type,
        duration_s=minutes * 60.0,
    )


def make_workouts(count: int, type_of=lambda n: "running") -> list[WorkoutRecord]:
    """Workouts w<count>..w1, newest first."""
    return [make_workout(n, type_of(n)) for n in range(count, 0, -1)]


class FakeStore:
    """In-memory store; remembers every query as ``(before, limit)``."""

    def __init__(self, workouts, *, available: bool = True, fail_on=()):
        # sorted() is stable: workouts sharing a start time keep their order
        self.workouts = sorted(workouts, key=lambda w: w.start_time, reverse=True)
        self.available = available
        self.fail_on = set(fail_on)
        self.queries: list[tuple[datetime.datetime | None, int]] = []

    def is_available(self) -> bool:
        return self.available

    async def query_workouts(self, before, limit):
        self.queries.append((before, limit))
        await asyncio.sleep(0)
        if len(self.queries) - 1 in self.fail_on:
            raise StoreQueryFailed("backend went away")

        matching = [w for w in self.workouts if before is None or w.start_time <= before]
        return QueryPage(tuple(matching[:limit]), len(matching) > limit)


class RecordingListener:
    def __init__(self):
        self.events: list[tuple] = []

    def loading_status_changed(self) -> None:
        self.events.append(("loading_status_changed",))

    def list_changed(self) -> None:
        self.events.append(("list_changed",))

    def additional_workouts_loaded(self, count: int, old_count: int) -> None:
        self.events.append(("additional_workouts_loaded", count, old_count))

    def names(self) -> list[str]:
        return [e[0] for e in self.events]


def load(store, listener=None, **options) -> WorkoutList:
    """Build a list over ``store`` and wait for its first reload."""
    options.setdefault("reload_delay", 0)
    options.setdefault("tz", UTC)

    async def _load():
        wl = WorkoutList(store, listener=listener, **options)
        wl.reload()
        await wl.join()
        return wl

    return asyncio.run(_load())


def load_more(wl: WorkoutList) -> None:
    async def _more():
        wl.load_more()
        await wl.join()

    asyncio.run(_more())


def reload(wl: WorkoutList) -> None:
    async def _reload():
        wl.reload()
        await wl.join()

    asyncio.run(_reload())


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()
