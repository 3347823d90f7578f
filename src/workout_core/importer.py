"""
Workout import from JSON.

The file holds a list of objects (or ``{"workouts": [...]}``) with ``uuid``,
``start_time``, ``end_time`` (ISO 8601, naive values are UTC) and
``activity_type``; ``duration_s``, ``distance_m``, ``energy_kj`` and
``source`` are optional.
"""

from __future__ import annotations

import datetime
import json
from typing import TYPE_CHECKING

from workout_core.models import WorkoutRecord, ensure_aware

if TYPE_CHECKING:
    from pathlib import Path

REQUIRED_FIELDS = {"uuid", "start_time", "end_time", "activity_type"}
OPTIONAL_NUMBERS = ("duration_s", "distance_m", "energy_kj")


def _parse_time(raw: str, field: str) -> datetime.datetime:
    try:
        return ensure_aware(datetime.datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid {field} '{raw}': {e}") from e


def parse_workout(entry: dict, index: int) -> WorkoutRecord:
    if not isinstance(entry, dict):
        raise ValueError(f"Workout {index}: expected an object, got {type(entry).__name__}")
    missing = REQUIRED_FIELDS - set(entry)
    if missing:
        raise ValueError(
            f"Workout {index}: missing required fields: {', '.join(sorted(missing))}"
        )

    try:
        start = _parse_time(entry["start_time"], "start_time")
        end = _parse_time(entry["end_time"], "end_time")
        if end < start:
            raise ValueError("end_time is before start_time")

        numbers = {}
        for key in OPTIONAL_NUMBERS:
            value = entry.get(key)
            numbers[key] = float(value) if value is not None else None
    except (TypeError, ValueError) as e:
        raise ValueError(f"Workout {index}: {e}") from e

    if numbers["duration_s"] is None:
        numbers["duration_s"] = (end - start).total_seconds()

    return WorkoutRecord(
        uuid=str(entry["uuid"]),
        start_time=start,
        end_time=end,
        activity_type=str(entry["activity_type"]),
        source=entry.get("source"),
        **numbers,
    )


def load_workouts_json(path: Path) -> list[WorkoutRecord]:
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("workouts")
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of workouts")

    return [parse_workout(entry, idx) for idx, entry in enumerate(data)]
