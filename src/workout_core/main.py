import argparse
import asyncio
import datetime
import logging
from pathlib import Path

from workout_core.config import load_settings, save_settings
from workout_core.database import DatabaseManager, SQLWorkoutStore
from workout_core.importer import load_workouts_json
from workout_core.models import WorkoutRecord
from workout_core.workout_list import WorkoutList

logger = logging.getLogger(__name__)


def _format_hms(seconds: int) -> str:
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    return f"{h:d}:{m:02d}:{s:02d}" if h else f"{m:d}:{s:02d}"


def _format_distance_m(distance_m: float | None) -> str:
    if not distance_m:
        return "—"
    return f"{distance_m / 1000.0:.2f} km"


def format_workout(w: WorkoutRecord, tz: datetime.tzinfo | None = None) -> str:
    start = w.start_time.astimezone(tz)
    duration = w.duration_s if w.duration_s is not None else (w.end_time - w.start_time).total_seconds()
    return (
        f"{start:%Y-%m-%d %H:%M}  {w.activity_type:<16} "
        f"{_format_hms(int(duration)):>8}  {_format_distance_m(w.distance_m):>10}"
    )


class _ProgressLog:
    def __init__(self, workouts: WorkoutList):
        self._workouts = workouts

    def loading_status_changed(self) -> None:
        logger.info("Loading: %s", self._workouts.is_loading)

    def list_changed(self) -> None:
        logger.info("%d workouts displayed", len(self._workouts.workouts))

    def additional_workouts_loaded(self, count: int, old_count: int) -> None:
        logger.info("%d more workouts displayed after the first %d", count, old_count)


async def _collect(args, store: SQLWorkoutStore, options: dict) -> WorkoutList:
    workouts = WorkoutList(store, **options)
    progress = _ProgressLog(workouts)
    workouts.listener = progress

    if args.since:
        workouts.set_start_date(args.since)
    if args.until:
        workouts.set_end_date(args.until)

    workouts.reload()
    await workouts.join()

    # types can only be picked among the loaded ones
    if args.types:
        workouts.set_filters(args.types)
        while (
            workouts.error is None
            and len(workouts.workouts) < workouts.batch_size
            and workouts.can_display_more
        ):
            workouts.load_more()
            await workouts.join()

    for _ in range(args.pages):
        if workouts.error is not None or not workouts.can_display_more:
            break
        workouts.load_more()
        await workouts.join()

    return workouts


def _iso_date(raw: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got '{raw}'") from e


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workout-list", description="List workouts, newest first."
    )
    parser.add_argument("--config", type=Path, help="Path to config.ini")
    parser.add_argument("--database", help="Database DSN (overrides the config file)")
    parser.add_argument(
        "--import",
        dest="import_file",
        type=Path,
        help="Add the workouts in this JSON file to the database first",
    )
    parser.add_argument(
        "--type",
        dest="types",
        action="append",
        default=[],
        help="Only show this activity type (repeatable)",
    )
    parser.add_argument("--since", type=_iso_date, help="First day to show (YYYY-MM-DD)")
    parser.add_argument("--until", type=_iso_date, help="Last day to show (YYYY-MM-DD)")
    parser.add_argument(
        "--pages", type=int, default=0, help="Extra batches to load after the first one"
    )
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Write the effective settings back to the config file",
    )
    parser.add_argument("--verbose", action="store_true", help="Log loading progress")
    return parser


def main(argv=None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.config)
        if args.database:
            settings.database_dsn = args.database
        if args.save_config:
            print(f"Settings saved to {save_settings(settings, args.config)}")
        options = settings.list_options()

        db = DatabaseManager(settings.database_url)
        if args.import_file:
            added = db.add_workouts(load_workouts_json(args.import_file))
            print(f"Imported {added} new workouts")
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    workouts = asyncio.run(_collect(args, SQLWorkoutStore(db), options))
    if workouts.error is not None:
        print(f"Error: {workouts.error}")
        return 1

    for w in workouts.workouts:
        print(format_workout(w, options["tz"]))

    more = " (more available)" if workouts.can_display_more else ""
    print(f"{len(workouts.workouts)} of {len(workouts.all_workouts)} loaded workouts shown{more}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
