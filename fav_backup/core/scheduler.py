"""Picks full or incremental sweeps per trigger and owns the sync checkpoint."""

import logging
import time
from enum import Enum
from typing import Callable

from fav_backup.core.checkpoint import SyncCheckpoint
from fav_backup.core.models import SweepResult, SyncMode
from fav_backup.core.sync_engine import ReconciliationEngine

logger = logging.getLogger(__name__)

FULL_SYNC_INTERVAL = 24 * 60 * 60


class Trigger(str, Enum):
    INSTALL = "install"
    STARTUP = "startup"


class Scheduler:
    """
    Trigger policy:
    - install/update: always a full sweep, establishing the baseline
    - startup: full sweep once full_sync_interval has passed since the last
      successful one, incremental otherwise

    Only a full sweep with no failed collection advances the checkpoint.
    """

    def __init__(self, engine: ReconciliationEngine, checkpoint: SyncCheckpoint,
                 full_sync_interval: float = FULL_SYNC_INTERVAL,
                 clock: Callable[[], float] = time.time):
        self._engine = engine
        self._checkpoint = checkpoint
        self._interval = full_sync_interval
        self._clock = clock

    def decide(self, trigger: Trigger) -> SyncMode:
        if trigger is Trigger.INSTALL:
            return SyncMode.FULL
        elapsed = self._clock() - self._checkpoint.last_full_sync()
        if elapsed >= self._interval:
            logger.info(f"Last full sync {elapsed / 3600:.1f}h ago, running full sweep")
            return SyncMode.FULL
        logger.info(f"Last full sync {elapsed / 3600:.1f}h ago, running incremental sweep")
        return SyncMode.INCREMENTAL

    def run(self, trigger: Trigger) -> SweepResult:
        return self.execute(self.decide(trigger))

    def execute(self, mode: SyncMode) -> SweepResult:
        result = self._engine.sweep(mode)

        if mode is SyncMode.FULL and result.success:
            now = self._clock()
            self._checkpoint.advance(now)
            logger.info("Full sweep succeeded, checkpoint advanced")
        elif mode is SyncMode.FULL:
            logger.warning("Full sweep had failures, checkpoint unchanged")
        return result
