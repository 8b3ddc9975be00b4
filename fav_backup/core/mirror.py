"""Mirror of collection contents: collection id -> item id -> last-known record."""

import logging
import threading
from pathlib import Path
from typing import Iterable, Mapping

from fav_backup.core.models import Item, StorageError, TitleLookup
from fav_backup.core.storage import atomic_write, read_json

logger = logging.getLogger(__name__)


class MirrorStore:
    """Durable backup of every collection.

    Each collection's mapping is swapped as a whole under a lock, so a reader
    running alongside a sweep sees either the old or the new contents of a
    collection, never a half-written one.
    """

    def __init__(self, mirror_file: Path):
        self._file = mirror_file
        self._collections: dict[str, dict[str, Item]] = {}
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        data = read_json(self._file, {})
        if not isinstance(data, dict):
            raise StorageError(f"{self._file.name} is not a mapping")
        try:
            self._collections = {
                str(cid): {str(iid): Item.from_dict(rec) for iid, rec in items.items()}
                for cid, items in data.items()
            }
        except (AttributeError, KeyError, ValueError) as e:
            raise StorageError(f"Corrupt record in {self._file.name}: {e}") from e
        total = sum(len(items) for items in self._collections.values())
        logger.debug(f"Loaded mirror: {len(self._collections)} collections, {total} items")

    def save(self) -> None:
        with self._lock:
            data = {
                cid: {iid: item.to_dict() for iid, item in items.items()}
                for cid, items in self._collections.items()
            }
        atomic_write(self._file, data)

    def collection_ids(self) -> list[str]:
        with self._lock:
            return list(self._collections)

    def get_collection(self, collection_id: str) -> dict[str, Item]:
        """Copy of one collection's mapping (empty if never backed up)."""
        with self._lock:
            return dict(self._collections.get(collection_id, {}))

    def has_collection(self, collection_id: str) -> bool:
        with self._lock:
            return collection_id in self._collections

    def replace_collection(self, collection_id: str, items: Mapping[str, Item]) -> None:
        staged = dict(items)
        with self._lock:
            self._collections[collection_id] = staged

    def merge_collection(self, collection_id: str, inserts: Mapping[str, Item]) -> None:
        with self._lock:
            merged = dict(self._collections.get(collection_id, {}))
            merged.update(inserts)
            self._collections[collection_id] = merged

    def delete_collections(self, collection_ids: Iterable[str]) -> list[str]:
        deleted = []
        with self._lock:
            for cid in collection_ids:
                if self._collections.pop(cid, None) is not None:
                    deleted.append(cid)
        return deleted

    def lookup(self, collection_id: str, item_id: str) -> Item | None:
        with self._lock:
            return self._collections.get(collection_id, {}).get(item_id)

    def resolve_title(self, collection_id: str, item_id: str) -> TitleLookup | None:
        item = self.lookup(collection_id, item_id)
        if item is None:
            return None
        return TitleLookup(
            title=item.title,
            removal_reason=None if item.is_active else item.status,
        )

    def __len__(self) -> int:
        with self._lock:
            return sum(len(items) for items in self._collections.values())
