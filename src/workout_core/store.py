from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import datetime

    from workout_core.models import WorkoutRecord


class StoreError(Exception):
    """Base class for failures reported by a workout store."""


class StoreUnavailable(StoreError):
    """The health data store cannot be accessed at all."""


class StoreQueryFailed(StoreError):
    """A single page query failed."""


@dataclass(frozen=True)
class QueryPage:
    workouts: tuple[WorkoutRecord, ...]
    # True when the store cut the result at the requested limit
    has_more: bool


class WorkoutStore(Protocol):
    def is_available(self) -> bool: ...

    async def query_workouts(
        self, before: datetime.datetime | None, limit: int
    ) -> QueryPage:
        """
        Return up to ``limit`` workouts sorted by start time, newest first.
        When ``before`` is given only workouts starting at or before it are
        returned (the bound is inclusive).
        """
        ...
