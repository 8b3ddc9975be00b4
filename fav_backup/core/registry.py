"""Durable list of the user's collections and the cached account id."""

import logging
from pathlib import Path

from fav_backup.core.models import Collection, StorageError
from fav_backup.core.storage import atomic_write, read_json

logger = logging.getLogger(__name__)


class CollectionRegistry:
    def __init__(self, collections_file: Path, account_file: Path):
        self._file = collections_file
        self._account_file = account_file

    def load(self) -> list[Collection]:
        data = read_json(self._file, [])
        if not isinstance(data, list):
            raise StorageError(f"{self._file.name} is not a list")
        return [Collection.from_dict(entry) for entry in data]

    def replace(self, collections: list[Collection]) -> None:
        """Persist the latest collection list, discarding the previous one."""
        atomic_write(self._file, [c.to_dict() for c in collections])
        logger.debug(f"Registry holds {len(collections)} collections")

    def load_account_id(self) -> str | None:
        data = read_json(self._account_file, {})
        account_id = data.get("account_id") if isinstance(data, dict) else None
        return str(account_id) if account_id is not None else None

    def save_account_id(self, account_id: str) -> None:
        atomic_write(self._account_file, {"account_id": account_id})
