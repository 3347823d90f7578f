from __future__ import annotations

from zoneinfo import ZoneInfo

import pytest
from workout_core.config import Settings, load_settings, save_settings


def _write(path, text: str):
    path.write_text(text)
    return path


def test_missing_file_gives_defaults(tmp_path) -> None:
    settings = load_settings(tmp_path / "nope.ini")

    assert settings == Settings()
    assert settings.database_url.startswith("sqlite:///")
    assert settings.list_options() == {
        "batch_size": 40,
        "filtered_load_multiplier": 5,
        "reload_delay": 0.5,
        "tz": None,
    }


def test_values_are_read(tmp_path) -> None:
    cfg = _write(
        tmp_path / "config.ini",
        "[server]\n"
        "database_dsn = sqlite:////tmp/other.db\n"
        "[workout_list]\n"
        "batch_size = 25\n"
        "filtered_load_multiplier = 3\n"
        "reload_delay = 0\n"
        "timezone = Europe/Rome\n",
    )

    settings = load_settings(cfg)

    assert settings.database_url == "sqlite:////tmp/other.db"
    assert settings.batch_size == 25
    assert settings.filtered_load_multiplier == 3
    assert settings.reload_delay == 0.0
    assert settings.list_options()["tz"] == ZoneInfo("Europe/Rome")


def test_partial_section_keeps_defaults(tmp_path) -> None:
    cfg = _write(tmp_path / "config.ini", "[workout_list]\nbatch_size = 10\n")

    settings = load_settings(cfg)

    assert settings.batch_size == 10
    assert settings.reload_delay == 0.5
    assert settings.database_dsn == ""


@pytest.mark.parametrize(
    "line",
    [
        "batch_size = many",
        "reload_delay = -1",
        "timezone = Mars/Olympus_Mons",
    ],
)
def test_invalid_values_name_the_key(tmp_path, line: str) -> None:
    cfg = _write(tmp_path / "config.ini", f"[workout_list]\n{line}\n")
    key = line.split(" = ")[0]

    with pytest.raises(ValueError, match=key):
        load_settings(cfg)


def test_save_and_load_again(tmp_path) -> None:
    settings = Settings(database_dsn="sqlite:///x.db", batch_size=12, timezone="UTC")

    path = save_settings(settings, tmp_path / "sub" / "config.ini")

    assert path.exists()
    assert load_settings(path) == settings
