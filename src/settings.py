"""Settings loaded from environment variables (+ optional .env file).

Priority: real environment variable > .env entry > default. All keys use
the TASKTRACK_ prefix; NO_COLOR is honored as well.
"""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "TASKTRACK"
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return max(0, int(raw))
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_level(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip().upper()
    level = logging.getLevelName(raw) if raw else default
    return level if isinstance(level, int) else default


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    export_dir: Path
    log_dir: Path
    log_level: int
    storage_quota: int
    color: bool


def load_settings(env_file: Optional[Path] = None) -> Settings:
    load_dotenv(env_file or PROJECT_ROOT / ".env", override=False)
    data_dir = _env_path(_k("DATA_DIR"), PROJECT_ROOT / "data")
    return Settings(
        data_dir=data_dir,
        export_dir=_env_path(_k("EXPORT_DIR"), Path.cwd()),
        log_dir=_env_path(_k("LOG_DIR"), data_dir / "logs"),
        log_level=_env_level(_k("LOG_LEVEL"), logging.WARNING),
        storage_quota=_env_int(_k("STORAGE_QUOTA"), 0),
        color=_env_bool(_k("COLOR"), True) and os.getenv("NO_COLOR") is None,
    )
