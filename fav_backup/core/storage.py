"""Whole-value JSON state files with atomic replacement."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fav_backup.core.models import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatePaths:
    """Locations of the persisted state under one data directory."""
    mirror: Path
    invalid_ids: Path
    collections: Path
    last_full_sync: Path
    account: Path
    status: Path

    @classmethod
    def under(cls, data_dir: Path) -> "StatePaths":
        return cls(
            mirror=data_dir / "mirror.json",
            invalid_ids=data_dir / "invalid_ids.json",
            collections=data_dir / "collections.json",
            last_full_sync=data_dir / "last_full_sync.json",
            account=data_dir / "account.json",
            status=data_dir / "sync_status.json",
        )


def read_json(path: Path, default: Any) -> Any:
    """Return the decoded file, or ``default`` when it does not exist yet."""
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise StorageError(f"Failed to read {path.name}: {e}") from e


def atomic_write(path: Path, data: Any) -> None:
    """Write ``data`` as JSON so readers only ever see the old or the new file."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}_", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            os.replace(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
    except OSError as e:
        raise StorageError(f"Failed to write {path.name}: {e}") from e
    logger.debug(f"Wrote {path.name}")
