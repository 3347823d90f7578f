from __future__ import annotations

import datetime
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from workout_core.workout_list import WorkoutList

APP_DIR = Path("~/.local/share/workout-core").expanduser()
CONFIG_FILE = APP_DIR / "config.ini"


@dataclass
class Settings:
    database_dsn: str = ""
    batch_size: int = WorkoutList.BATCH_SIZE
    filtered_load_multiplier: int = WorkoutList.FILTERED_LOAD_MULTIPLIER
    reload_delay: float = WorkoutList.RELOAD_DELAY
    # IANA name; empty means the system time zone
    timezone: str = ""

    @property
    def database_url(self) -> str:
        return self.database_dsn or f"sqlite:///{APP_DIR / 'workouts.db'}"

    def tzinfo(self) -> datetime.tzinfo | None:
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(
                f"[workout_list] timezone: unknown time zone '{self.timezone}'"
            ) from e

    def list_options(self) -> dict[str, Any]:
        """Keyword arguments for ``WorkoutList`` / ``WorkoutListWorker``."""
        return {
            "batch_size": self.batch_size,
            "filtered_load_multiplier": self.filtered_load_multiplier,
            "reload_delay": self.reload_delay,
            "tz": self.tzinfo(),
        }


def _get_number(cfg: ConfigParser, key: str, fallback, convert):
    raw = cfg.get("workout_list", key, fallback=None)
    if raw is None or not raw.strip():
        return fallback
    try:
        value = convert(raw)
    except ValueError as e:
        raise ValueError(f"[workout_list] {key}: invalid value '{raw}'") from e
    if value < 0:
        raise ValueError(f"[workout_list] {key}: must not be negative, got {value}")
    return value


def load_settings(path: Path | str | None = None) -> Settings:
    """Read settings from ``path`` (default ``CONFIG_FILE``); missing values keep their defaults."""
    config_file = Path(path) if path else CONFIG_FILE
    settings = Settings()
    if not config_file.exists():
        return settings

    cfg = ConfigParser()
    cfg.read(config_file)
    settings.database_dsn = cfg.get("server", "database_dsn", fallback="")

    settings.batch_size = _get_number(cfg, "batch_size", settings.batch_size, int)
    settings.filtered_load_multiplier = _get_number(
        cfg, "filtered_load_multiplier", settings.filtered_load_multiplier, int
    )
    settings.reload_delay = _get_number(cfg, "reload_delay", settings.reload_delay, float)
    settings.timezone = cfg.get("workout_list", "timezone", fallback="").strip()

    # fail early on a bad zone name
    settings.tzinfo()
    return settings


def save_settings(settings: Settings, path: Path | str | None = None) -> Path:
    config_file = Path(path) if path else CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)

    cfg = ConfigParser()
    cfg["server"] = {"database_dsn": settings.database_dsn}
    cfg["workout_list"] = {
        "batch_size": str(settings.batch_size),
        "filtered_load_multiplier": str(settings.filtered_load_multiplier),
        "reload_delay": str(settings.reload_delay),
        "timezone": settings.timezone,
    }

    with open(config_file, "w") as f:
        cfg.write(f)
    return config_file
