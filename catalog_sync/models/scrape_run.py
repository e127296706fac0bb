"""Scrape run tracking and monitoring."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON as JSONB
from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.models.base import Base, UUIDPrimaryKeyMixin


class ScrapeRun(UUIDPrimaryKeyMixin, Base):
    """Report of one platform run.

    Each run writes one row with its status, counters and duration so
    monitoring can follow catalog freshness per platform.
    """

    __tablename__ = "scrape_runs"

    platform: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="Status: 'completed', 'partial', 'budget_exceeded', 'cancelled'"
    )

    # Timing
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_seconds: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        comment="Total execution time in seconds"
    )

    # Metrics
    products_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    products_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    products_updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    products_unchanged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    products_deactivated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Pages, categories, escalations
    metadata_: Mapped[dict] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        default=dict,
        comment="Secondary counters: pages fetched, categories, escalations"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<ScrapeRun(platform='{self.platform}', status='{self.status}', started_at={self.started_at})>"
