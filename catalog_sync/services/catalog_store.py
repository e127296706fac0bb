"""Catalog store interface and its in-memory and SQLAlchemy implementations.

The engine only reads entries and proposes transitions through this
interface (insert, update, soft-deactivate). No implementation ever
deletes an entry.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from catalog_sync.models.catalog_product import CatalogProduct
from catalog_sync.scrapers.base import ProductRecord

logger = structlog.get_logger(__name__)

Key = Tuple[str, str]

# Fields copied verbatim between ProductRecord, CatalogEntry and CatalogProduct
RECORD_FIELDS = (
    "title",
    "description",
    "brand",
    "product_url",
    "category_path",
    "price",
    "sale_price",
    "currency",
    "offers",
    "inventory_status",
    "rating",
    "review_count",
    "images",
    "videos",
    "variants",
    "specifications",
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything here is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class CatalogEntry:
    """Persisted state of one product keyed by (platform, sku)."""

    platform: str
    sku: str
    title: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    product_url: Optional[str] = None
    category_path: Optional[str] = None
    price: Optional[Decimal] = None
    sale_price: Optional[Decimal] = None
    currency: Optional[str] = None
    offers: Optional[str] = None
    inventory_status: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    images: List[str] = field(default_factory=list)
    videos: List[str] = field(default_factory=list)
    variants: List[Dict[str, Any]] = field(default_factory=list)
    specifications: Dict[str, str] = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    active: bool = True
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None

    @property
    def key(self) -> Key:
        return (self.platform, self.sku)

    @classmethod
    def from_record(cls, record: ProductRecord, seen_at: datetime) -> "CatalogEntry":
        entry = cls(platform=record.platform, sku=record.sku, first_seen_at=seen_at)
        entry.apply(record, seen_at)
        return entry

    def apply(self, record: ProductRecord, seen_at: datetime) -> None:
        """Overwrite product fields with ``record`` and mark the entry seen."""
        for name in RECORD_FIELDS:
            setattr(self, name, copy.deepcopy(getattr(record, name)))
        self.metadata = dict(record.metadata)
        self.active = True
        self.deactivated_at = None
        self.last_seen_at = seen_at

    def touch(self, seen_at: datetime) -> None:
        """Heartbeat: only the sighting time moves."""
        self.last_seen_at = seen_at


class CatalogStore(ABC):
    """Persistence collaborator of the reconciliation engine.

    ``lock(platform, sku)`` gives per-key mutual exclusion for the
    read-modify-write the engine performs, so two runs touching the same
    product never lose an update.
    """

    def __init__(self):
        self._locks: Dict[Key, asyncio.Lock] = {}
        self._lock_users: Dict[Key, int] = {}

    @asynccontextmanager
    async def lock(self, platform: str, sku: str) -> AsyncIterator[None]:
        key = (platform, sku)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # Only keys in use keep a lock
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    @abstractmethod
    async def get(self, platform: str, sku: str) -> Optional[CatalogEntry]:
        """Current entry for the key, active or not."""

    @abstractmethod
    async def upsert(self, entry: CatalogEntry) -> None:
        """Insert or replace the entry with the same (platform, sku)."""

    @abstractmethod
    async def mark_inactive_unseen_since(self, platform: str, since: datetime) -> int:
        """Soft-deactivate active entries of ``platform`` last seen before ``since``.

        Returns:
            Number of entries deactivated
        """

    async def close(self) -> None:
        """Release underlying resources."""


class InMemoryCatalogStore(CatalogStore):
    """Dict-backed store for tests and embedding."""

    def __init__(self):
        super().__init__()
        self._entries: Dict[Key, CatalogEntry] = {}

    async def get(self, platform: str, sku: str) -> Optional[CatalogEntry]:
        entry = self._entries.get((platform, sku))
        return copy.deepcopy(entry) if entry else None

    async def upsert(self, entry: CatalogEntry) -> None:
        self._entries[entry.key] = copy.deepcopy(entry)

    async def mark_inactive_unseen_since(self, platform: str, since: datetime) -> int:
        now = datetime.now(timezone.utc)
        count = 0
        for entry in self._entries.values():
            if entry.platform == platform and entry.active and entry.last_seen_at < since:
                entry.active = False
                entry.deactivated_at = now
                count += 1
        return count

    def all(self, platform: Optional[str] = None) -> List[CatalogEntry]:
        return [
            copy.deepcopy(e)
            for e in self._entries.values()
            if platform is None or e.platform == platform
        ]


class SQLAlchemyCatalogStore(CatalogStore):
    """Catalog store on top of the ``catalog_products`` table.

    Every call runs in its own short transaction, so an interrupted run
    leaves every record reconciled so far committed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
    ):
        super().__init__()
        self.session_factory = session_factory
        self.engine = engine

    @staticmethod
    def _to_entry(row: CatalogProduct) -> CatalogEntry:
        entry = CatalogEntry(platform=row.platform, sku=row.sku)
        for name in RECORD_FIELDS:
            setattr(entry, name, copy.deepcopy(getattr(row, name)))
        entry.images = list(row.images or [])
        entry.videos = list(row.videos or [])
        entry.variants = list(row.variants or [])
        entry.specifications = dict(row.specifications or {})
        entry.metadata = dict(row.metadata_ or {})
        entry.active = row.is_active
        entry.first_seen_at = _aware(row.first_seen_at)
        entry.last_seen_at = _aware(row.last_seen_at)
        entry.deactivated_at = _aware(row.deactivated_at)
        return entry

    async def get(self, platform: str, sku: str) -> Optional[CatalogEntry]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CatalogProduct).where(
                    CatalogProduct.platform == platform,
                    CatalogProduct.sku == sku,
                )
            )
            row = result.scalar_one_or_none()
            return self._to_entry(row) if row else None

    async def upsert(self, entry: CatalogEntry) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CatalogProduct).where(
                    CatalogProduct.platform == entry.platform,
                    CatalogProduct.sku == entry.sku,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = CatalogProduct(platform=entry.platform, sku=entry.sku)
                session.add(row)

            for name in RECORD_FIELDS:
                setattr(row, name, copy.deepcopy(getattr(entry, name)))
            row.metadata_ = dict(entry.metadata)
            row.is_active = entry.active
            row.first_seen_at = entry.first_seen_at or entry.last_seen_at
            row.last_seen_at = entry.last_seen_at
            row.deactivated_at = entry.deactivated_at
            await session.commit()

    async def mark_inactive_unseen_since(self, platform: str, since: datetime) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                update(CatalogProduct)
                .where(
                    CatalogProduct.platform == platform,
                    CatalogProduct.is_active.is_(True),
                    CatalogProduct.last_seen_at < since,
                )
                .values(is_active=False, deactivated_at=datetime.now(timezone.utc))
            )
            await session.commit()
            return result.rowcount or 0

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
