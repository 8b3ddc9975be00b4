"""
Reconciliation Engine

Keeps the local mirror of every favorites folder in line with the catalog.

Full sync
---------
Pages through the whole folder and rebuilds its mirror entry from scratch:

1. Active item            -> remote copy is staged (new or updated)
2. Removed, mirrored      -> existing record is staged, title kept
3. Removed, never seen    -> dropped, nothing to preserve
4. Mirrored, not listed   -> not staged (user un-favorited it)

The staged mapping replaces the folder's entry wholesale, so running it twice
against an unchanged folder yields the same mirror, and listed items map 1:1
to mirror records (minus removed items that were never backed up).

Incremental sync
----------------
Only looks for additions. Diffs the folder's id list against the mirror and
the negative cache and fetches detail for each new id. When that would take
more requests than paging through the folder (one per PAGE_SIZE items), it
escalates to a full sync instead. Never deletes anything.

Request costs:
- full sync:        ceil(count / PAGE_SIZE) page requests
- incremental sync: 1 id-list request + 1 detail request per candidate
"""

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Protocol

from fav_backup.core.cache import NegativeCache
from fav_backup.core.mirror import MirrorStore
from fav_backup.core.models import (
    BackupError, CatalogError, Collection, CollectionList, CollectionResult,
    IdList, Item, ItemPage, PAGE_SIZE, SweepResult, SyncAnomalyError, SyncMode, TitleLookup,
)
from fav_backup.core.registry import CollectionRegistry

logger = logging.getLogger(__name__)

MISSING_TITLE = "Title not backed up"


class CatalogClientProtocol(Protocol):
    def resolve_account_id(self) -> str: ...
    def list_collections(self, account_id: str) -> CollectionList: ...
    def list_items_page(self, collection_id: str, page: int, page_size: int) -> ItemPage: ...
    def list_item_ids(self, collection_id: str) -> IdList: ...
    def get_item_detail(self, item_id: str) -> Item: ...


class ReconciliationEngine:
    """Runs full and incremental syncs against the mirror and negative cache."""

    def __init__(self, client: CatalogClientProtocol, mirror: MirrorStore,
                 negative_cache: NegativeCache, registry: CollectionRegistry,
                 page_size: int = PAGE_SIZE, max_workers: int = 1,
                 sweep_deadline: float = 0.0,
                 clock: Callable[[], float] = time.monotonic):
        self._client = client
        self._mirror = mirror
        self._negative = negative_cache
        self._registry = registry
        self._page_size = page_size
        self._max_workers = max(1, max_workers)
        self._sweep_deadline = sweep_deadline
        self._clock = clock
        # Single writer for every read-merge-write of mirror and negative cache
        self._write_lock = threading.Lock()

    def _persist(self) -> None:
        self._mirror.save()
        self._negative.save()

    def _fetch_all_items(self, collection_id: str) -> tuple[list[Item], int]:
        items: list[Item] = []
        declared = 0
        page = 1
        while True:
            result = self._client.list_items_page(collection_id, page, self._page_size)
            items.extend(result.items)
            declared = result.declared_count
            if not result.has_more:
                break
            page += 1
        logger.debug(f"Collection {collection_id}: {len(items)} items over {page} pages")
        return items, declared

    def full_sync(self, collection: Collection) -> CollectionResult:
        """Rebuild one collection's mirror entry from a complete listing."""
        items, declared = self._fetch_all_items(collection.id)

        # An empty listing for a non-empty folder is an API glitch, not a purge.
        # Either count source saying non-empty is enough.
        expected = max(declared, collection.declared_count)
        if not items and expected > 0:
            raise SyncAnomalyError(
                f"Collection {collection.id} declares {expected} items but none were listed"
            )

        with self._write_lock:
            existing = self._mirror.get_collection(collection.id)
            staged: dict[str, Item] = {}
            unavailable: list[str] = []
            preserved = 0

            for item in items:
                if item.is_active:
                    staged[item.id] = item
                    continue
                unavailable.append(item.id)
                prior = existing.get(item.id)
                if prior is not None:
                    staged[item.id] = prior.with_status(item.status)
                    preserved += 1

            self._negative.update(unavailable)
            self._mirror.replace_collection(collection.id, staged)
            self._persist()

        added = len(staged.keys() - existing.keys())
        removed = len(existing.keys() - staged.keys())
        logger.info(f"Full sync {collection.title} ({collection.id}): {len(staged)} backed up, "
                    f"+{added} -{removed}, {preserved} removed titles kept")
        return CollectionResult(
            collection_id=collection.id,
            title=collection.title,
            mode=SyncMode.FULL,
            added=added,
            removed=removed,
            preserved=preserved,
        )

    def incremental_sync(self, collection: Collection) -> CollectionResult:
        """Back up items added since the last sync; escalates to full sync when cheaper."""
        id_list = self._client.list_item_ids(collection.id)
        known = self._mirror.get_collection(collection.id)
        unavailable_ids = self._negative.snapshot()

        candidates = [
            item_id for item_id in dict.fromkeys(id_list.ids)
            if item_id not in known and item_id not in unavailable_ids
        ]

        page_requests = math.ceil(id_list.declared_count / self._page_size)
        if len(candidates) > page_requests:
            logger.info(f"Collection {collection.title} ({collection.id}): {len(candidates)} "
                        f"lookups > {page_requests} pages, escalating to full sync")
            result = self.full_sync(collection)
            result.escalated = True
            return result

        inserts: dict[str, Item] = {}
        unavailable: list[str] = []
        pending: list[str] = []

        for item_id in candidates:
            try:
                detail = self._client.get_item_detail(item_id)
            except CatalogError as e:
                pending.append(item_id)
                logger.error(f"Detail lookup for {item_id} failed: {e}")
                continue
            if detail.is_active:
                inserts[item_id] = detail
            else:
                unavailable.append(item_id)

        if inserts or unavailable or not self._mirror.has_collection(collection.id):
            with self._write_lock:
                self._mirror.merge_collection(collection.id, inserts)
                self._negative.update(unavailable)
                self._persist()

        logger.info(f"Incremental sync {collection.title} ({collection.id}): +{len(inserts)}, "
                    f"{len(unavailable)} unavailable, {len(pending)} pending")

        result = CollectionResult(
            collection_id=collection.id,
            title=collection.title,
            mode=SyncMode.INCREMENTAL,
            added=len(inserts),
            pending_ids=pending,
        )
        if pending:
            result.success = False
            result.error = f"Detail lookup failed for {len(pending)} items: {', '.join(pending)}"
        return result

    def refresh_registry(self, account_id: str) -> list[Collection]:
        """Store the current collection list and drop backups of deleted collections."""
        listing = self._client.list_collections(account_id)
        live = {c.id for c in listing.collections}

        with self._write_lock:
            self._registry.replace(listing.collections)
            stale = [cid for cid in self._mirror.collection_ids() if cid not in live]
            if stale:
                deleted = self._mirror.delete_collections(stale)
                self._mirror.save()
                logger.info(f"Dropped backups of {len(deleted)} deleted collections: {', '.join(deleted)}")

        return listing.collections

    def _sync_collection(self, collection: Collection, mode: SyncMode,
                         deadline: float | None) -> CollectionResult:
        if deadline is not None and self._clock() > deadline:
            logger.warning(f"Sweep deadline passed, skipping {collection.title} ({collection.id})")
            return CollectionResult(collection.id, collection.title, mode, success=False,
                                    error="Sweep deadline passed before sync started")
        sync = self.full_sync if mode is SyncMode.FULL else self.incremental_sync
        try:
            return sync(collection)
        except Exception as e:
            logger.error(f"Collection {collection.title} ({collection.id}) {mode.value} sync failed: {e}")
            return CollectionResult(collection.id, collection.title, mode, success=False,
                                    error=f"{type(e).__name__}: {e}")

    def sweep(self, mode: SyncMode) -> SweepResult:
        """Sync every collection. Failures are isolated per collection."""
        start = time.time()
        deadline = self._clock() + self._sweep_deadline if self._sweep_deadline > 0 else None

        logger.info("=" * 50)
        logger.info(f"Starting {mode.value} sweep")
        logger.info(f"Mirror entries: {len(self._mirror)}, known unavailable: {len(self._negative)}")

        try:
            account_id = self._client.resolve_account_id()
            self._registry.save_account_id(account_id)
        except BackupError as e:
            logger.error(f"Cannot resolve account, aborting sweep: {e}")
            return SweepResult.failure(mode, f"Cannot resolve account: {e}")

        try:
            collections = self.refresh_registry(account_id)
        except BackupError as e:
            logger.error(f"Collection list refresh failed: {e}")
            return SweepResult.failure(mode, f"Collection list refresh failed: {e}")

        if self._max_workers > 1 and len(collections) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as ex:
                results = list(ex.map(lambda c: self._sync_collection(c, mode, deadline), collections))
        else:
            results = [self._sync_collection(c, mode, deadline) for c in collections]

        errors = [f"{r.title} ({r.collection_id}): {r.error}" for r in results if not r.success]
        duration = time.time() - start

        if errors:
            logger.warning(f"{len(errors)} of {len(results)} collections failed {mode.value} sync")
        logger.info(f"Completed in {duration:.1f}s: {len(results) - len(errors)}/{len(results)} collections")
        logger.info("=" * 50)

        return SweepResult(
            mode=mode,
            success=not errors,
            collections=results,
            errors=errors,
            duration=duration,
        )

    def resolve_title(self, collection_id: str, item_id: str) -> TitleLookup | None:
        return self._mirror.resolve_title(collection_id, item_id)

    def annotate_removed(self, collection_id: str, items: Iterable[Item]) -> list[Item]:
        """Give removed items on a page their backed-up titles."""
        annotated = []
        for item in items:
            if item.is_active:
                continue
            lookup = self._mirror.resolve_title(collection_id, item.id)
            title = lookup.title if lookup and lookup.title else MISSING_TITLE
            annotated.append(Item(id=item.id, title=title, status=item.status,
                                  numeric_id=item.numeric_id, owner=item.owner))
        return annotated
