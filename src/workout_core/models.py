from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")


class LoadState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"


@dataclass(frozen=True)
class WorkoutRecord:
    """A workout as returned by the store.

    Two records are the same workout when they share ``uuid``, regardless of
    the other fields (a second fetch may carry refreshed metrics).
    """

    uuid: str
    start_time: datetime.datetime = field(compare=False)
    end_time: datetime.datetime = field(compare=False)
    activity_type: str = field(compare=False)

    duration_s: float | None = field(default=None, compare=False)
    distance_m: float | None = field(default=None, compare=False)
    energy_kj: float | None = field(default=None, compare=False)
    source: str | None = field(default=None, compare=False)


def ensure_aware(dt: datetime.datetime) -> datetime.datetime:
    # naive values coming out of SQLite are UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def calendar_day(
    value: datetime.date | datetime.datetime, tz: datetime.tzinfo | None = None
) -> datetime.date:
    """Truncate ``value`` to its calendar day in ``tz`` (local time when ``None``)."""
    if isinstance(value, datetime.datetime):
        return ensure_aware(value).astimezone(tz).date()
    return value
