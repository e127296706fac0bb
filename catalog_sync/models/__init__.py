"""SQLAlchemy models for catalog-sync.

All models are imported here so metadata.create_all (and any migration
tool) can discover them.
"""

from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from catalog_sync.models.catalog_product import CatalogProduct
from catalog_sync.models.scrape_run import ScrapeRun

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "CatalogProduct",
    "ScrapeRun",
]
