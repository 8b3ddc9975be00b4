#!/usr/bin/env python3
"""Favorites backup - entry point for install/startup triggers"""

import argparse
import fcntl
import logging
import os
import sys
import time
from pathlib import Path

from fav_backup.clients.bilibili import BilibiliClient
from fav_backup.config import STALE_LOCK_SECONDS, BackupConfig, ConfigError, load_config
from fav_backup.core.cache import NegativeCache
from fav_backup.core.checkpoint import SyncCheckpoint
from fav_backup.core.mirror import MirrorStore
from fav_backup.core.models import BackupError, SweepResult, SyncMode
from fav_backup.core.registry import CollectionRegistry
from fav_backup.core.scheduler import Scheduler, Trigger
from fav_backup.core.status import write_running_status, write_status
from fav_backup.core.storage import StatePaths
from fav_backup.core.sync_engine import ReconciliationEngine

LOCK_NAME = ".sync.lock"
LOG_NAME = "fav_backup.log"

logger = logging.getLogger(__name__)


def setup_logging(data_dir: Path, level: str = "INFO") -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.FileHandler(data_dir / LOG_NAME, encoding="utf-8"),
            logging.StreamHandler()
        ]
    )
    # One line per catalog request at DEBUG would bury the sweep log
    logging.getLogger("urllib3").setLevel(logging.WARNING)


class SweepLock:
    """Exclusive lock on the data directory for the length of one sweep.

    The lock file holds the owner's pid and trigger so a blocked run can
    report who is sweeping. A file older than `stale_after` seconds is left
    over from a killed sweep and is removed before locking.
    """

    def __init__(self, data_dir: Path, trigger: Trigger, stale_after: float = STALE_LOCK_SECONDS):
        self.path = data_dir / LOCK_NAME
        self.trigger = trigger
        self.stale_after = stale_after
        self._fd: int | None = None

    def holder(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8").strip() or "unknown"
        except OSError:
            return "unknown"

    def acquire(self) -> bool:
        if self.path.exists():
            age = time.time() - self.path.stat().st_mtime
            if age > self.stale_after:
                logger.warning(f"Removing stale sweep lock held by {self.holder()} (age: {age:.0f}s)")
                self.path.unlink(missing_ok=True)

        fd = os.open(str(self.path), os.O_CREAT | os.O_RDWR)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            return False
        os.ftruncate(fd, 0)
        os.write(fd, f"pid={os.getpid()} trigger={self.trigger.value}\n".encode())
        self._fd = fd
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            self.path.unlink(missing_ok=True)
            fcntl.flock(fd, fcntl.LOCK_UN)
        except OSError as e:
            logger.warning(f"Failed to release sweep lock: {e}")
        finally:
            os.close(fd)

    def __enter__(self) -> "SweepLock":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()


def build_scheduler(config: BackupConfig, paths: StatePaths) -> Scheduler:
    client = BilibiliClient(config.sessdata, timeout=config.request_timeout,
                            request_interval=config.request_interval)
    engine = ReconciliationEngine(
        client,
        MirrorStore(paths.mirror),
        NegativeCache(paths.invalid_ids),
        CollectionRegistry(paths.collections, paths.account),
        max_workers=config.max_workers,
        sweep_deadline=config.sweep_deadline,
    )
    return Scheduler(engine, SyncCheckpoint(paths.last_full_sync),
                     full_sync_interval=config.full_sync_interval)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="fav-backup",
                                     description="Back up Bilibili favorite folders.")
    parser.add_argument("trigger", choices=[t.value for t in Trigger],
                        help="install: always full sync; startup: full or incremental by elapsed time")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    trigger = Trigger(args.trigger)

    try:
        config = load_config()
    except ConfigError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(str(e))
        return 1

    setup_logging(config.data_dir, config.log_level)
    paths = StatePaths.under(config.data_dir)

    lock = SweepLock(config.data_dir, trigger, stale_after=config.stale_lock_seconds)
    if not lock.acquire():
        logger.warning(f"Another sweep is running ({lock.holder()}), exiting")
        return 0
    with lock:
        return run_sweep(config, paths, trigger)


def run_sweep(config: BackupConfig, paths: StatePaths, trigger: Trigger) -> int:
    mode = SyncMode.FULL
    try:
        scheduler = build_scheduler(config, paths)
        mode = scheduler.decide(trigger)
        write_running_status(mode, paths.status)

        logger.info(f"Trigger: {trigger.value}")
        result = scheduler.execute(mode)
        write_status(result, paths.status)

        if result.success:
            logger.info(f"Backup completed: {len(result.collections)} collections")
            return 0
        else:
            logger.warning(f"Backup errors: {result.errors}")
            return 1

    except BackupError as e:
        logger.error(f"Backup failed: {e}")
        write_status(SweepResult.failure(mode, str(e)), paths.status)
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        write_status(SweepResult.failure(mode, f"Unexpected error: {e}"), paths.status)
        return 1


if __name__ == "__main__":
    sys.exit(main())
