"""Data models for backup operations."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

# Largest page size the catalog list endpoint accepts
PAGE_SIZE = 40


class BackupError(Exception):
    """Base class for backup failures."""
    pass


class CatalogError(BackupError):
    """A catalog call failed."""
    pass


class TransportError(CatalogError):
    """Network/HTTP failure or non-success API code. Retried at the next trigger."""
    pass


class SchemaError(CatalogError):
    """Response shape violates the expected contract."""
    pass


class IdentityError(BackupError):
    """Account identifier could not be resolved."""
    pass


class SyncAnomalyError(BackupError):
    """Full sync found no items although the collection declares some."""
    pass


class StorageError(BackupError):
    """Persisted state could not be read or written."""
    pass


class ItemStatus(str, Enum):
    ACTIVE = "active"
    REMOVED_UNSPECIFIED = "removed"
    REMOVED_BY_OWNER = "removed_by_owner"
    RESTRICTED = "restricted"

    @classmethod
    def from_attr(cls, attr: int) -> "ItemStatus":
        """Map the catalog's attr flag (0 ok, 9 deleted by uploader, -1 owner-only)."""
        if attr == 0:
            return cls.ACTIVE
        if attr == 9:
            return cls.REMOVED_BY_OWNER
        if attr == -1:
            return cls.RESTRICTED
        return cls.REMOVED_UNSPECIFIED


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


@dataclass(frozen=True)
class Owner:
    id: Optional[int] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class Item:
    """A catalog entry observed in a collection. Immutable, so records handed
    out by the mirror can be shared between threads."""
    id: str
    title: Optional[str]
    status: ItemStatus
    numeric_id: Optional[int] = None
    owner: Owner = field(default_factory=Owner)

    @property
    def is_active(self) -> bool:
        return self.status is ItemStatus.ACTIVE

    @classmethod
    def removed(cls, item_id: str, status: ItemStatus) -> "Item":
        """Marker for an item whose detail is no longer available."""
        return cls(id=item_id, title=None, status=status)

    def with_status(self, status: ItemStatus) -> "Item":
        return replace(self, status=status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "numeric_id": self.numeric_id,
            "title": self.title,
            "status": self.status.value,
            "owner": {"id": self.owner.id, "name": self.owner.name},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Item":
        owner = data.get("owner") or {}
        return cls(
            id=data["id"],
            numeric_id=data.get("numeric_id"),
            title=data.get("title"),
            status=ItemStatus(data.get("status", ItemStatus.ACTIVE.value)),
            owner=Owner(owner.get("id"), owner.get("name")),
        )


@dataclass
class Collection:
    """A favorites folder."""
    id: str
    owner_id: Optional[int]
    title: str
    declared_count: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "declared_count": self.declared_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Collection":
        return cls(
            id=str(data["id"]),
            owner_id=data.get("owner_id"),
            title=data.get("title", ""),
            declared_count=int(data.get("declared_count", 0)),
        )


@dataclass
class ItemPage:
    items: List[Item]
    has_more: bool
    declared_count: int


@dataclass
class IdList:
    ids: List[str]
    declared_count: int


@dataclass
class CollectionList:
    collections: List[Collection]
    declared_count: int


@dataclass
class TitleLookup:
    title: Optional[str]
    removal_reason: Optional[ItemStatus]


@dataclass
class CollectionResult:
    """Outcome of syncing one collection."""
    collection_id: str
    title: str
    mode: SyncMode
    success: bool = True
    added: int = 0
    removed: int = 0
    preserved: int = 0
    escalated: bool = False
    pending_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class SweepResult:
    """Result of one pass over all collections."""
    mode: SyncMode
    success: bool
    collections: List[CollectionResult]
    errors: List[str]
    duration: float

    @property
    def failed_count(self) -> int:
        return sum(1 for c in self.collections if not c.success)

    @classmethod
    def failure(cls, mode: SyncMode, error: str) -> "SweepResult":
        """Create a failure result with single error."""
        return cls(
            mode=mode,
            success=False,
            collections=[],
            errors=[error],
            duration=0.0
        )
