"""Runtime configuration from environment variables."""

import os
from dataclasses import dataclass
from pathlib import Path

from fav_backup.core.models import BackupError
from fav_backup.core.scheduler import FULL_SYNC_INTERVAL

DEFAULT_DATA_DIR = Path("/config/fav_backup")
STALE_LOCK_SECONDS = 1800


class ConfigError(BackupError):
    pass


@dataclass(frozen=True)
class BackupConfig:
    sessdata: str
    data_dir: Path = DEFAULT_DATA_DIR
    full_sync_interval: float = FULL_SYNC_INTERVAL
    max_workers: int = 1
    request_timeout: float = 10.0
    request_interval: float = 0.1
    sweep_deadline: float = 0.0
    log_level: str = "INFO"
    stale_lock_seconds: float = STALE_LOCK_SECONDS


def _number(env: dict, name: str, default: float, minimum: float = 0.0) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_config(env: dict | None = None) -> BackupConfig:
    env = os.environ if env is None else env

    sessdata = env.get("BILIBILI_SESSDATA")
    if not sessdata:
        raise ConfigError("Missing config: BILIBILI_SESSDATA")

    return BackupConfig(
        sessdata=sessdata,
        data_dir=Path(env.get("DATA_DIR") or DEFAULT_DATA_DIR),
        full_sync_interval=_number(env, "FULL_SYNC_INTERVAL_HOURS", FULL_SYNC_INTERVAL / 3600) * 3600,
        max_workers=int(_number(env, "MAX_WORKERS", 1, minimum=1)),
        request_timeout=_number(env, "REQUEST_TIMEOUT", 10.0, minimum=0.1),
        request_interval=_number(env, "REQUEST_INTERVAL", 0.1),
        sweep_deadline=_number(env, "SWEEP_DEADLINE", 0.0),
        log_level=env.get("LOG_LEVEL") or "INFO",
        stale_lock_seconds=_number(env, "STALE_LOCK_MINUTES", STALE_LOCK_SECONDS / 60, minimum=1) * 60,
    )
