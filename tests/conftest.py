# fav_backup test fixtures

from pathlib import Path

import pytest

from fav_backup.core.cache import NegativeCache
from fav_backup.core.checkpoint import SyncCheckpoint
from fav_backup.core.mirror import MirrorStore
from fav_backup.core.models import (
    Collection, CollectionList, IdList, Item, ItemPage, ItemStatus, Owner,
)
from fav_backup.core.registry import CollectionRegistry
from fav_backup.core.storage import StatePaths
from fav_backup.core.sync_engine import ReconciliationEngine


def active(item_id: str, title: str | None = None) -> Item:
    return Item(
        id=item_id,
        numeric_id=sum(map(ord, item_id)),
        title=title or f"Video {item_id}",
        status=ItemStatus.ACTIVE,
        owner=Owner(42, "uploader"),
    )


def removed(item_id: str, status: ItemStatus = ItemStatus.REMOVED_UNSPECIFIED) -> Item:
    # The listing keeps showing removed entries, with a placeholder title
    return Item(id=item_id, numeric_id=None, title="Video unavailable", status=status,
                owner=Owner(0, ""))


class FakeCatalog:
    """In-memory catalog recording every call made against it."""

    def __init__(self, account_id: str = "1001"):
        self.account_id = account_id
        self.identity_error: Exception | None = None
        self.folders: dict[str, list[Item]] = {}
        self.titles: dict[str, str] = {}
        self.declared: dict[str, int] = {}
        self.page_errors: dict[str, Exception] = {}
        self.detail_errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []

    def add_folder(self, folder_id: str, items: list[Item], title: str | None = None) -> None:
        self.folders[folder_id] = list(items)
        self.titles[folder_id] = title or f"Folder {folder_id}"

    def resolve_account_id(self) -> str:
        self.calls.append(("account", ""))
        if self.identity_error:
            raise self.identity_error
        return self.account_id

    def list_collections(self, account_id: str) -> CollectionList:
        self.calls.append(("collections", account_id))
        collections = [
            Collection(id=fid, owner_id=int(account_id), title=self.titles[fid],
                       declared_count=self.declared.get(fid, len(items)))
            for fid, items in self.folders.items()
        ]
        return CollectionList(collections=collections, declared_count=len(collections))

    def list_items_page(self, collection_id: str, page: int, page_size: int) -> ItemPage:
        self.calls.append(("page", f"{collection_id}:{page}"))
        if collection_id in self.page_errors:
            raise self.page_errors[collection_id]
        items = self.folders[collection_id]
        chunk = items[(page - 1) * page_size:page * page_size]
        return ItemPage(
            items=list(chunk),
            has_more=page * page_size < len(items),
            declared_count=self.declared.get(collection_id, len(items)),
        )

    def list_item_ids(self, collection_id: str) -> IdList:
        self.calls.append(("ids", collection_id))
        ids = [item.id for item in self.folders[collection_id]]
        return IdList(ids=ids, declared_count=len(ids))

    def get_item_detail(self, item_id: str) -> Item:
        self.calls.append(("detail", item_id))
        if item_id in self.detail_errors:
            raise self.detail_errors[item_id]
        for items in self.folders.values():
            for item in items:
                if item.id == item_id:
                    if item.is_active:
                        return item
                    return Item.removed(item_id, item.status)
        return Item.removed(item_id, ItemStatus.REMOVED_UNSPECIFIED)

    def detail_calls(self) -> list[str]:
        return [arg for name, arg in self.calls if name == "detail"]

    def page_calls(self) -> list[str]:
        return [arg for name, arg in self.calls if name == "page"]


@pytest.fixture
def paths(tmp_path: Path) -> StatePaths:
    return StatePaths.under(tmp_path / "state")


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def mirror(paths: StatePaths) -> MirrorStore:
    return MirrorStore(paths.mirror)


@pytest.fixture
def negative_cache(paths: StatePaths) -> NegativeCache:
    return NegativeCache(paths.invalid_ids)


@pytest.fixture
def registry(paths: StatePaths) -> CollectionRegistry:
    return CollectionRegistry(paths.collections, paths.account)


@pytest.fixture
def checkpoint(paths: StatePaths) -> SyncCheckpoint:
    return SyncCheckpoint(paths.last_full_sync)


@pytest.fixture
def engine(catalog: FakeCatalog, mirror: MirrorStore, negative_cache: NegativeCache,
           registry: CollectionRegistry) -> ReconciliationEngine:
    return ReconciliationEngine(catalog, mirror, negative_cache, registry)


def folder(catalog: FakeCatalog, folder_id: str) -> Collection:
    """The Collection the registry would hand the engine for a fake folder."""
    items = catalog.folders[folder_id]
    return Collection(id=folder_id, owner_id=int(catalog.account_id),
                      title=catalog.titles[folder_id],
                      declared_count=catalog.declared.get(folder_id, len(items)))
