# tests/test_settings.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from settings import PROJECT_ROOT, load_settings

KEYS = [
    "TASKTRACK_DATA_DIR",
    "TASKTRACK_EXPORT_DIR",
    "TASKTRACK_LOG_DIR",
    "TASKTRACK_LOG_LEVEL",
    "TASKTRACK_STORAGE_QUOTA",
    "TASKTRACK_COLOR",
    "NO_COLOR",
]


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    # set-then-delete so teardown also removes anything a .env file loaded
    for key in KEYS:
        monkeypatch.setenv(key, "x")
        monkeypatch.delenv(key)
    return monkeypatch


def test_defaults(clean_env, tmp_path: Path) -> None:
    s = load_settings(env_file=tmp_path / "missing.env")

    assert s.data_dir == PROJECT_ROOT / "data"
    assert s.log_dir == PROJECT_ROOT / "data" / "logs"
    assert s.log_level == logging.WARNING
    assert s.storage_quota == 0
    assert s.color is True


def test_environment_overrides(clean_env, tmp_path: Path) -> None:
    clean_env.setenv("TASKTRACK_DATA_DIR", str(tmp_path / "d"))
    clean_env.setenv("TASKTRACK_LOG_LEVEL", "debug")
    clean_env.setenv("TASKTRACK_STORAGE_QUOTA", "5000")
    clean_env.setenv("TASKTRACK_COLOR", "off")

    s = load_settings(env_file=tmp_path / "missing.env")

    assert s.data_dir == tmp_path / "d"
    assert s.log_dir == tmp_path / "d" / "logs"
    assert s.log_level == logging.DEBUG
    assert s.storage_quota == 5000
    assert s.color is False


def test_bad_values_fall_back(clean_env, tmp_path: Path) -> None:
    clean_env.setenv("TASKTRACK_LOG_LEVEL", "chatty")
    clean_env.setenv("TASKTRACK_STORAGE_QUOTA", "lots")
    clean_env.setenv("NO_COLOR", "1")

    s = load_settings(env_file=tmp_path / "missing.env")

    assert s.log_level == logging.WARNING
    assert s.storage_quota == 0
    assert s.color is False


def test_dotenv_file_does_not_override_environment(clean_env, tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("TASKTRACK_STORAGE_QUOTA=1234\nTASKTRACK_LOG_LEVEL=ERROR\n", encoding="utf-8")
    clean_env.setenv("TASKTRACK_LOG_LEVEL", "INFO")

    s = load_settings(env_file=env_file)

    assert s.storage_quota == 1234
    assert s.log_level == logging.INFO
