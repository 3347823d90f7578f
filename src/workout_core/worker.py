from __future__ import annotations

import asyncio
import concurrent.futures
import datetime
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from workout_core.store import WorkoutStore
from workout_core.workout_list import (
    Dispatcher,
    WorkoutList,
    WorkoutListListener,
    call_directly,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkoutListWorker:
    """
    Owns a ``WorkoutList`` and the event loop it lives on, running on a
    background thread, so a UI thread can drive the list without blocking.

    All list state is touched on the worker thread only; listener callbacks go
    through ``dispatch`` (pass ``workout_core.glib_dispatch.idle_dispatch`` to get
    them on the GTK main loop).
    """

    def __init__(
        self,
        store: WorkoutStore,
        *,
        listener: WorkoutListListener | None = None,
        dispatch: Dispatcher = call_directly,
        **options: Any,
    ):
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self.loop = asyncio.new_event_loop()
        self._stop_event: asyncio.Event | None = None

        self.workouts = WorkoutList(store, listener=listener, dispatch=dispatch, **options)

    def start(self):
        self._thread = threading.Thread(target=self._run, name="workout-list", daemon=True)
        self._thread.start()
        self._ready.wait()

    def shutdown(self, timeout: float = 3.0):
        if not self.loop.is_running() or self._stop_event is None:
            return

        self.loop.call_soon_threadsafe(self._stop_event.set)
        if self._thread:
            self._thread.join(timeout=timeout)

    def _run(self):
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_until_complete(self._workflow())
        finally:
            self.loop.close()

    async def _workflow(self):
        self._stop_event = asyncio.Event()
        self._ready.set()
        await self._stop_event.wait()

        # A running transaction is not cancellable; let it settle
        await self.workouts.join()
        logger.debug("Workout list worker stopped")

    # --- Calls from other threads ---
    def call(self, fn: Callable[..., Any], *args: Any) -> None:
        """Schedule ``fn(*args)`` on the worker thread and return immediately."""
        self.loop.call_soon_threadsafe(fn, *args)

    def run(self, fn: Callable[..., T], *args: Any) -> concurrent.futures.Future[T]:
        """Run ``fn(*args)`` on the worker thread; the future holds its result."""

        async def _call():
            return fn(*args)

        return asyncio.run_coroutine_threadsafe(_call(), self.loop)

    def reload(self) -> None:
        self.call(self.workouts.reload)

    def load_more(self) -> None:
        self.call(self.workouts.load_more)

    def set_filters(self, activity_types: Iterable[str]) -> bool:
        return self.run(self.workouts.set_filters, frozenset(activity_types)).result()

    def set_start_date(self, value: datetime.date | datetime.datetime | None) -> bool:
        return self.run(self.workouts.set_start_date, value).result()

    def set_end_date(self, value: datetime.date | datetime.datetime | None) -> bool:
        return self.run(self.workouts.set_end_date, value).result()

    def set_locked(self, locked: bool) -> None:
        self.call(setattr, self.workouts, "locked", locked)

    def wait_idle(self, timeout: float | None = None) -> None:
        """Block until the current reload or load_more has finished."""
        asyncio.run_coroutine_threadsafe(self.workouts.join(), self.loop).result(timeout)
