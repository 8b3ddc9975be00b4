"""Timestamp of the last fully successful full sweep."""

from pathlib import Path

from fav_backup.core.storage import atomic_write, read_json


class SyncCheckpoint:
    def __init__(self, checkpoint_file: Path):
        self._file = checkpoint_file

    def last_full_sync(self) -> float:
        """Epoch seconds of the last successful full sweep, 0.0 if none."""
        data = read_json(self._file, {})
        if not isinstance(data, dict):
            return 0.0
        try:
            return float(data.get("last_full_sync", 0.0))
        except (TypeError, ValueError):
            return 0.0

    def advance(self, timestamp: float) -> None:
        atomic_write(self._file, {"last_full_sync": timestamp})
