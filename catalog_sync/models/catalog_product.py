"""Catalog entry persisted per (platform, sku)."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON as JSONB
from sqlalchemy import Boolean, DateTime, Float, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class CatalogProduct(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Product as last seen on an e-commerce platform.

    Each product is uniquely identified by the (platform, sku) pair. Rows
    are never deleted by the engine: products that disappear from a
    platform are soft-deactivated (``is_active = False``).
    """

    __tablename__ = "catalog_products"

    platform: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String(200), nullable=False, comment="Product ID on the platform")

    # Product info
    title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    product_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    category_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Pricing
    price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Regular / list price (MRP)"
    )
    sale_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Current selling price"
    )
    currency: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    offers: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Availability and reviews
    inventory_status: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    review_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Media, variants, specifications
    images: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    videos: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    variants: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    specifications: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Refreshed by every run that extracted this product"
    )
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("platform", "sku", name="uq_catalog_platform_sku"),
        Index("ix_catalog_platform_active_seen", "platform", "is_active", "last_seen_at"),
    )

    def __repr__(self) -> str:
        return f"<CatalogProduct(platform='{self.platform}', sku='{self.sku}', active={self.is_active})>"
