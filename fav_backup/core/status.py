"""Status file describing the last sweep"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from fav_backup.core.models import StorageError, SweepResult, SyncMode
from fav_backup.core.storage import atomic_write

logger = logging.getLogger(__name__)


def write_status(result: SweepResult, status_file: Path) -> bool:
    data = {
        "status": "success" if result.success else "failed",
        "mode": result.mode.value,
        "last_sync_time": datetime.now(timezone.utc).isoformat(),
        "collections_synced": len(result.collections) - result.failed_count,
        "collections_failed": result.failed_count,
        "items_added": sum(c.added for c in result.collections),
        "items_removed": sum(c.removed for c in result.collections),
        "escalated": [c.collection_id for c in result.collections if c.escalated],
        "last_error": result.errors[-1] if result.errors else None,
        "duration": round(result.duration, 2),
    }
    return _write(status_file, data)


def write_running_status(mode: SyncMode, status_file: Path) -> bool:
    data = {
        "status": "running",
        "mode": mode.value,
        "last_sync_time": datetime.now(timezone.utc).isoformat(),
        "collections_synced": 0,
        "collections_failed": 0,
        "items_added": 0,
        "items_removed": 0,
        "escalated": [],
        "last_error": None,
        "duration": 0.0,
    }
    return _write(status_file, data)


def _write(path: Path, data: dict) -> bool:
    try:
        atomic_write(path, data)
        return True
    except StorageError as e:
        logger.warning(f"Status write failed: {e}")
        return False
