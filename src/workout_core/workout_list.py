from __future__ import annotations

import asyncio
import datetime
import logging
import weakref
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from workout_core.models import LoadState, WorkoutRecord, calendar_day
from workout_core.store import (
    StoreError,
    StoreQueryFailed,
    StoreUnavailable,
    WorkoutStore,
)

logger = logging.getLogger(__name__)

# (callback, *args) -> None, e.g. GLib.idle_add
Dispatcher = Callable[..., Any]


def call_directly(fn: Callable[..., Any], *args: Any) -> None:
    fn(*args)


class WorkoutListListener(Protocol):
    def loading_status_changed(self) -> None: ...

    def list_changed(self) -> None: ...

    def additional_workouts_loaded(self, count: int, old_count: int) -> None: ...


class WorkoutList:
    """
    Incrementally loaded, filtered list of workouts, newest first.

    Workouts are fetched from ``store`` in batches by ``reload()`` and
    ``load_more()``; the filtered view is exposed as ``workouts``.

    The list belongs to the asyncio event loop it is first used on: every
    public method must be called from that loop's thread. Listener callbacks
    go through ``dispatch`` so a UI can receive them on its own main loop;
    pass ``workout_core.glib_dispatch.idle_dispatch`` for a GTK main loop.
    """

    BATCH_SIZE = 40
    FILTERED_LOAD_MULTIPLIER = 5
    RELOAD_DELAY = 0.5

    def __init__(
        self,
        store: WorkoutStore,
        *,
        listener: WorkoutListListener | None = None,
        dispatch: Dispatcher = call_directly,
        batch_size: int = BATCH_SIZE,
        filtered_load_multiplier: int = FILTERED_LOAD_MULTIPLIER,
        reload_delay: float = RELOAD_DELAY,
        tz: datetime.tzinfo | None = None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        if filtered_load_multiplier < 1:
            raise ValueError(
                f"filtered_load_multiplier must be at least 1, got {filtered_load_multiplier}"
            )
        if reload_delay < 0:
            raise ValueError(f"reload_delay must not be negative, got {reload_delay}")

        self.store = store
        self.batch_size = batch_size
        self.filtered_load_multiplier = filtered_load_multiplier
        self.reload_delay = reload_delay
        # Day boundaries for date filters, local time when None
        self.tz = tz

        self._dispatch = dispatch
        self._listener_ref: weakref.ref[WorkoutListListener] | None = None
        self.listener = listener

        # Set by whoever owns the list (e.g. while an edit is in progress)
        self.locked = False

        self._all: list[WorkoutRecord] = []
        self._known: set[WorkoutRecord] = set()
        self._workouts: tuple[WorkoutRecord, ...] = ()

        self._start_date: datetime.date | None = None
        self._end_date: datetime.date | None = None
        self._filters: frozenset[str] = frozenset()

        self._is_loading = False
        self._can_load_more = False
        self._error: StoreError | None = None
        self._task: asyncio.Task | None = None

    # ---- Listener ----
    @property
    def listener(self) -> WorkoutListListener | None:
        return self._listener_ref() if self._listener_ref is not None else None

    @listener.setter
    def listener(self, value: WorkoutListListener | None) -> None:
        self._listener_ref = weakref.ref(value) if value is not None else None

    def _emit(self, name: str, *args: Any) -> None:
        self._dispatch(self._deliver, name, *args)

    def _deliver(self, name: str, *args: Any) -> bool:
        listener = self.listener
        if listener is not None:
            try:
                getattr(listener, name)(*args)
            except Exception:
                # a broken listener must not leave the list half updated
                logger.exception("Workout list listener failed in %s", name)
        # one-shot when dispatched through GLib.idle_add
        return False

    # ---- State ----
    @property
    def workouts(self) -> tuple[WorkoutRecord, ...]:
        """The workouts matching the current filters, newest first."""
        return self._workouts

    @property
    def all_workouts(self) -> tuple[WorkoutRecord, ...]:
        return tuple(self._all)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> StoreError | None:
        return self._error

    @property
    def state(self) -> LoadState:
        if self._is_loading:
            return LoadState.LOADING
        if isinstance(self._error, StoreUnavailable):
            return LoadState.ERROR
        return LoadState.IDLE

    @property
    def can_load_more(self) -> bool:
        """Whether the store may hold workouts older than the ones loaded."""
        return self._can_load_more

    @property
    def can_display_more(self) -> bool:
        """
        Whether ``load_more()`` may add displayed workouts.

        Type filters don't affect this value, but as loading goes by start
        time, once the loaded workouts are older than ``start_date`` nothing
        else can be displayed.
        """
        if self._start_date is None or not self._all:
            return self._can_load_more
        oldest = calendar_day(self._all[-1].start_time, self.tz)
        return self._can_load_more and self._start_date <= oldest

    # ---- Filters ----
    @property
    def start_date(self) -> datetime.date | None:
        return self._start_date

    @property
    def end_date(self) -> datetime.date | None:
        return self._end_date

    @property
    def filters(self) -> frozenset[str]:
        return self._filters

    @property
    def available_filters(self) -> frozenset[str]:
        return frozenset(w.activity_type for w in self._all)

    @property
    def is_filtering(self) -> bool:
        return bool(self._filters)

    def set_start_date(self, value: datetime.date | datetime.datetime | None) -> bool:
        """Show only workouts starting on or after the day of ``value``.

        An end date earlier than the new start date is cleared. Returns whether
        the filter changed.
        """
        if self.locked:
            return False
        start = calendar_day(value, self.tz) if value is not None else None
        end = self._end_date
        if start is not None and end is not None and start > end:
            end = None
        return self._apply_dates(start, end)

    def set_end_date(self, value: datetime.date | datetime.datetime | None) -> bool:
        """Show only workouts ending on or before the day of ``value``.

        A start date later than the new end date is cleared. Returns whether
        the filter changed.
        """
        if self.locked:
            return False
        end = calendar_day(value, self.tz) if value is not None else None
        start = self._start_date
        if start is not None and end is not None and end < start:
            start = None
        return self._apply_dates(start, end)

    def set_filters(self, activity_types: Iterable[str]) -> bool:
        """Show only the given activity types; empty shows everything.

        Types not among ``available_filters`` are dropped, and asking for all
        of them is the same as not filtering. Returns whether the filter changed.
        """
        if self.locked:
            return False
        available = self.available_filters
        good = frozenset(activity_types) & available
        if good == available:
            good = frozenset()
        if good == self._filters:
            return False

        self._filters = good
        self._update_filtered_list()
        return True

    def _apply_dates(self, start: datetime.date | None, end: datetime.date | None) -> bool:
        if (start, end) == (self._start_date, self._end_date):
            return False
        self._start_date = start
        self._end_date = end
        self._update_filtered_list()
        return True

    def _matches(self, w: WorkoutRecord) -> bool:
        # Both bounds are inclusive
        if self._start_date is not None and calendar_day(w.start_time, self.tz) < self._start_date:
            return False
        if self._end_date is not None and calendar_day(w.end_time, self.tz) > self._end_date:
            return False
        return not self._filters or w.activity_type in self._filters

    def _update_filtered_list(self) -> None:
        self._workouts = tuple(w for w in self._all if self._matches(w))
        self._emit("list_changed")

    # ---- Loading ----
    def reload(self) -> None:
        """Drop everything loaded and start over from the newest workout."""
        if self._is_loading or self.locked:
            return
        loop = asyncio.get_running_loop()

        self._all = []
        self._known = set()
        self._can_load_more = False

        if self.store.is_available():
            self._error = None
            self._is_loading = True
            self._emit("loading_status_changed")
            self._task = loop.create_task(self._load_batches(self.batch_size, self.reload_delay))
        else:
            logger.warning("Workout store is not available")
            self._error = StoreUnavailable("health data is not available")
            self._emit("loading_status_changed")

        self._update_filtered_list()

    def load_more(self) -> None:
        """Load enough older workouts to display another batch."""
        if self._is_loading or self.locked:
            return
        loop = asyncio.get_running_loop()

        self._is_loading = True
        self._emit("loading_status_changed")
        target = len(self._workouts) + self.batch_size
        self._task = loop.create_task(self._load_batches(target, 0.0))

    async def join(self) -> None:
        """Wait until the running reload or load_more, if any, has finished."""
        if self._task is not None:
            await asyncio.shield(self._task)

    def _next_query(self, target: int) -> tuple[datetime.datetime | None, int]:
        if not self._all:
            return None, target

        # The store returns workouts starting exactly at the bound again
        last_start = self._all[-1].start_time
        same_start = 0
        for w in reversed(self._all):
            if w.start_time != last_start:
                break
            same_start += 1

        missing = max(target - len(self._workouts), 1)
        wanted = missing * self.filtered_load_multiplier if self.is_filtering else missing
        return last_start, same_start + min(self.batch_size, wanted)

    def _merge(self, fetched: Iterable[WorkoutRecord]) -> list[WorkoutRecord]:
        fresh: list[WorkoutRecord] = []
        add_all = False
        for w in fetched:
            # Pages are sorted like the loaded list: past the first unknown
            # workout no known one can follow
            if add_all or w not in self._known:
                add_all = True
                fresh.append(w)

        self._all.extend(fresh)
        self._known.update(fresh)
        return fresh

    async def _load_batches(self, target: int, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)

        logger.info("Loading workouts until %d are displayed", target)
        while True:
            # Filters may have been widened while waiting for the task to run
            if self._all and len(self._workouts) >= target:
                self._finish(0, len(self._workouts))
                return

            before, limit = self._next_query(target)
            try:
                page = await self.store.query_workouts(before, limit)
            except StoreError as e:
                self._fail(e)
                return
            except Exception as e:
                logger.exception("Workout store raised an unexpected error")
                self._fail(e)
                return

            self._error = None
            self._can_load_more = page.has_more

            old_count = len(self._workouts)
            fresh = self._merge(page.workouts)
            self._workouts = tuple(w for w in self._all if self._matches(w))
            added = len(self._workouts) - old_count
            logger.debug(
                "Query before=%s limit=%d returned %d workouts, %d new, %d displayed",
                before,
                limit,
                len(page.workouts),
                len(fresh),
                added,
            )

            if fresh and self.can_display_more and len(self._workouts) < target:
                self._emit("additional_workouts_loaded", added, old_count)
                continue

            if not fresh and page.has_more:
                logger.warning("Store reported more workouts but returned none that are new")

            self._finish(added, old_count)
            return

    def _finish(self, added: int, old_count: int) -> None:
        self._is_loading = False
        logger.info("Loaded %d workouts, %d displayed", len(self._all), len(self._workouts))
        self._emit("loading_status_changed")
        self._emit("additional_workouts_loaded", added, old_count)

    def _fail(self, exc: Exception) -> None:
        logger.warning("Workout query failed, discarding loaded workouts: %s", exc)
        if isinstance(exc, StoreQueryFailed):
            error = exc
        else:
            error = StoreQueryFailed(str(exc) or type(exc).__name__)
            error.__cause__ = exc

        self._is_loading = False
        self._can_load_more = False
        self._error = error
        self._emit("loading_status_changed")

        self._all = []
        self._known = set()
        self._update_filtered_list()
