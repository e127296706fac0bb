"""Extraction adapter interface and the product record it produces.

All platform-specific adapters inherit from ExtractionAdapter. The engine
only ever talks to this interface: it hands over raw page content and gets
back candidate product URLs, pagination hints and product records.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx
import structlog

from catalog_sync.core.exceptions import ExtractionFailure, ExtractionFailureKind
from catalog_sync.scrapers.schemas import PlatformConfig

_CENTS = Decimal("0.01")


def _to_price(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(_CENTS)
    except (InvalidOperation, ValueError):
        return None


@dataclass
class ProductRecord:
    """Structured product data extracted from one product page."""

    platform: str
    sku: str  # Unique within platform, derived from the product URL or page identity
    title: Optional[str] = None
    product_url: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[Decimal] = None  # Regular / list price (MRP)
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
    category_path: Optional[str] = None
    scraped_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict = field(default_factory=dict)  # Platform-specific extras

    def __post_init__(self):
        """Normalize identity and prices so catalog comparisons are stable."""
        self.sku = (self.sku or "").strip()
        self.price = _to_price(self.price)
        self.sale_price = _to_price(self.sale_price)
        if self.rating is not None:
            self.rating = round(float(self.rating), 2)
        if self.review_count is not None:
            self.review_count = int(self.review_count)
        self.images = list(dict.fromkeys(self.images or []))
        self.videos = list(dict.fromkeys(self.videos or []))


def validate_record(
    record: Optional[ProductRecord], platform: str, product_url: str
) -> ProductRecord:
    """Enforce the SKU invariant before a record may reach reconciliation.

    Stamps the record with the platform it was extracted for.

    Raises:
        ExtractionFailure: If the adapter produced nothing or an empty SKU
    """
    if record is None:
        raise ExtractionFailure(
            product_url, ExtractionFailureKind.MISSING_SKU, "adapter returned no record"
        )
    if not record.sku:
        raise ExtractionFailure(
            product_url, ExtractionFailureKind.MISSING_SKU, "record has an empty SKU"
        )
    record.platform = platform
    if not record.product_url:
        record.product_url = product_url
    return record


class ExtractionAdapter(ABC):
    """Abstract base class for platform extraction adapters.

    Adapters are pure: they never fetch, sleep or persist. ``platform``
    must be overridden and is the registry key.
    """

    platform: str = ""

    def __init__(self, config: Optional[PlatformConfig] = None):
        self.config = config or self.default_config()
        self.logger = structlog.get_logger(__name__).bind(adapter=self.platform)

    @classmethod
    def default_config(cls) -> PlatformConfig:
        """Configuration used when none is supplied at registration."""
        return PlatformConfig(platform_name=cls.platform)

    @abstractmethod
    def list_product_urls(self, content: str, category_url: str) -> List[str]:
        """Extract candidate product-page URLs from a listing page.

        Args:
            content: Raw listing page content
            category_url: The category URL being walked

        Returns:
            Absolute product URLs (duplicates allowed, the engine de-duplicates)
        """

    @abstractmethod
    def extract_product(self, content: str, product_url: str) -> Optional[ProductRecord]:
        """Extract a structured record from a product page.

        Returns:
            ProductRecord, or None if the page holds no recognizable product
        """

    def has_next_page(self, content: str, page_url: str) -> bool:
        """Regular pagination: whether the listing offers a next page.

        The default keeps walking; the page ceiling and the first empty
        listing page end the walk.
        """
        return True

    def next_cursor(self, content: str, page_url: str) -> Optional[str]:
        """Cursor pagination: continuation token for the next page, if any."""
        return None

    def cursor_url(self, category_url: str, cursor: str) -> str:
        """Turn a continuation token into the URL of the next listing page."""
        if cursor.startswith(("http://", "https://")):
            return cursor
        param = self.config.pagination.cursor_param
        return str(httpx.URL(category_url).copy_merge_params({param: cursor}))
