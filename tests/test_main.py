from __future__ import annotations

import json

import pytest
from conftest import BASE, make_workouts
from workout_core.main import format_workout, main


@pytest.fixture
def workouts_file(tmp_path):
    path = tmp_path / "workouts.json"
    entries = [
        {
            "uuid": w.uuid,
            "start_time": w.start_time.isoformat(),
            "end_time": w.end_time.isoformat(),
            "activity_type": w.activity_type,
            "distance_m": 5000.0,
        }
        for w in make_workouts(100, lambda n: "running" if n % 2 == 0 else "cycling")
    ]
    path.write_text(json.dumps(entries))
    return path


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text(
        f"[server]\ndatabase_dsn = sqlite:///{tmp_path / 'w.db'}\n"
        "[workout_list]\nreload_delay = 0\ntimezone = UTC\n"
    )
    return path


def test_import_and_list(workouts_file, config_file, capsys) -> None:
    assert main(["--config", str(config_file), "--import", str(workouts_file)]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Imported 100 new workouts"
    assert out[-1] == "40 of 40 loaded workouts shown (more available)"
    assert len(out) == 42


def test_type_filter_loads_enough(workouts_file, config_file, capsys) -> None:
    main(["--config", str(config_file), "--import", str(workouts_file)])
    capsys.readouterr()

    assert main(["--config", str(config_file), "--type", "cycling"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert all("cycling" in line for line in out[:-1])
    # one more batch is asked for on top of the 20 found in the first one
    assert out[-1] == "50 of 100 loaded workouts shown"


def test_since_limits_output(workouts_file, config_file, capsys) -> None:
    main(["--config", str(config_file), "--import", str(workouts_file)])
    capsys.readouterr()

    # w84..w100 start on Jan 5th
    assert main(["--config", str(config_file), "--since", "2024-01-05", "--pages", "3"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out[-1] == "17 of 40 loaded workouts shown"


def test_bad_config_exits_with_error(tmp_path, capsys) -> None:
    cfg = tmp_path / "config.ini"
    cfg.write_text("[workout_list]\nbatch_size = lots\n")

    assert main(["--config", str(cfg)]) == 1
    assert "batch_size" in capsys.readouterr().out


def test_format_workout() -> None:
    w = make_workouts(1)[0]

    line = format_workout(w, BASE.tzinfo)

    assert line.startswith("2024-01-01 13:00  running")
    assert "30:00" in line
