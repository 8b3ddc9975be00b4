"""Negative cache of item ids known to be unavailable.

Global rather than per collection: an item is unavailable everywhere or
nowhere. Entries are only ever added.
"""

import logging
import threading
from pathlib import Path
from typing import Iterable

from fav_backup.core.models import StorageError
from fav_backup.core.storage import atomic_write, read_json

logger = logging.getLogger(__name__)


class NegativeCache:
    def __init__(self, cache_file: Path):
        self._file = cache_file
        self._ids: set[str] = set()
        self._dirty = False
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        data = read_json(self._file, [])
        if not isinstance(data, list):
            raise StorageError(f"{self._file.name} is not a list")
        self._ids = {str(item_id) for item_id in data}
        logger.debug(f"Loaded {len(self._ids)} known-unavailable ids")

    def save(self) -> None:
        with self._lock:
            if not self._dirty:
                return
            snapshot = sorted(self._ids)
            self._dirty = False
        try:
            atomic_write(self._file, snapshot)
        except StorageError:
            with self._lock:
                self._dirty = True
            raise

    def add(self, item_id: str) -> bool:
        """Record an id. Returns True if it was not known before."""
        with self._lock:
            if item_id in self._ids:
                return False
            self._ids.add(item_id)
            self._dirty = True
            return True

    def update(self, item_ids: Iterable[str]) -> int:
        return sum(1 for item_id in item_ids if self.add(item_id))

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._ids)

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)
