"""Platform extraction adapters."""

from catalog_sync.scrapers.adapters.bigbasket import BigBasketAdapter
from catalog_sync.scrapers.adapters.blinkit import BlinkitAdapter
from catalog_sync.scrapers.adapters.flipkart import FlipkartAdapter
from catalog_sync.scrapers.adapters.structured_data import StructuredDataAdapter

__all__ = [
    "StructuredDataAdapter",
    "FlipkartAdapter",
    "BigBasketAdapter",
    "BlinkitAdapter",
]
