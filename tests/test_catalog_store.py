"""Tests for the catalog stores and run reporters."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from catalog_sync.models import CatalogProduct, ScrapeRun
from catalog_sync.scrapers.base import ProductRecord
from catalog_sync.services.catalog_store import CatalogEntry, SQLAlchemyCatalogStore
from catalog_sync.services.reconciliation import ReconciliationEngine
from catalog_sync.services.run_reporter import (
    CompositeRunReporter,
    RunReporter,
    SQLAlchemyRunReporter,
)
from catalog_sync.services.run_stats import RunReport, RunStats, RunStatus

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def entry(sku: str, seen_at: datetime = T0, **fields) -> CatalogEntry:
    record = ProductRecord(platform="shop", sku=sku, title=f"Product {sku}", price="99.90", **fields)
    return CatalogEntry.from_record(record, seen_at)


@pytest.fixture
def sql_store(session_factory) -> SQLAlchemyCatalogStore:
    return SQLAlchemyCatalogStore(session_factory)


class TestSQLAlchemyCatalogStore:
    async def test_missing_entry(self, sql_store):
        assert await sql_store.get("shop", "nope") is None

    async def test_upsert_and_get(self, sql_store):
        await sql_store.upsert(
            entry(
                "A",
                images=["https://img.test/a.jpg"],
                specifications={"Colour": "Black"},
                metadata={"json_ld": True},
            )
        )

        stored = await sql_store.get("shop", "A")

        assert stored.title == "Product A"
        assert stored.price == Decimal("99.90")
        assert stored.images == ["https://img.test/a.jpg"]
        assert stored.specifications == {"Colour": "Black"}
        assert stored.metadata == {"json_ld": True}
        assert stored.active
        assert stored.last_seen_at == T0

    async def test_upsert_replaces_existing_row(self, sql_store, session_factory):
        await sql_store.upsert(entry("A"))
        updated = entry("A", seen_at=T0 + timedelta(hours=1))
        updated.title = "Renamed"
        await sql_store.upsert(updated)

        async with session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(CatalogProduct))
        stored = await sql_store.get("shop", "A")

        assert count == 1
        assert stored.title == "Renamed"
        assert stored.last_seen_at == T0 + timedelta(hours=1)

    async def test_mark_inactive_unseen_since(self, sql_store):
        await sql_store.upsert(entry("old", seen_at=T0))
        await sql_store.upsert(entry("fresh", seen_at=T0 + timedelta(hours=2)))

        count = await sql_store.mark_inactive_unseen_since("shop", T0 + timedelta(hours=1))
        again = await sql_store.mark_inactive_unseen_since("shop", T0 + timedelta(hours=1))

        assert count == 1
        assert again == 0
        old = await sql_store.get("shop", "old")
        assert not old.active
        assert old.deactivated_at is not None
        assert (await sql_store.get("shop", "fresh")).active

    async def test_reconciliation_round_trip(self, sql_store, wall_clock):
        engine = ReconciliationEngine(sql_store, clock=wall_clock)
        records = [
            ProductRecord(platform="shop", sku="A", title="A", price="10.00", images=["https://img.test/a.jpg"]),
            ProductRecord(platform="shop", sku="B", title="B", price="20.00", rating=4.5, review_count=12),
        ]

        first = RunStats()
        run = engine.begin("shop")
        for r in records:
            await engine.reconcile(run, r, first)
        await engine.finalize(run, first)

        second = RunStats()
        run = engine.begin("shop")
        for r in records:
            await engine.reconcile(run, r, second)
        await engine.finalize(run, second)

        assert first.products_added == 2
        assert second.products_unchanged == 2
        assert second.products_deactivated == 0


class TestKeyedLocks:
    async def test_same_key_is_serialized_and_lock_released(self, store):
        order = []

        async def worker(name):
            async with store.lock("shop", "A"):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("one"), worker("two"))

        assert order == ["one-in", "one-out", "two-in", "two-out"]
        assert store._locks == {}

    async def test_lock_dropped_after_error(self, store):
        with pytest.raises(ValueError):
            async with store.lock("shop", "A"):
                raise ValueError("boom")

        assert store._locks == {}

    async def test_reconciled_keys_do_not_keep_locks(self, store, wall_clock):
        engine = ReconciliationEngine(store, clock=wall_clock)
        run = engine.begin("shop")

        for sku in ("A", "B", "C"):
            await engine.reconcile(run, ProductRecord(platform="shop", sku=sku), RunStats())

        assert store._locks == {}


class TestRunReporters:
    async def test_report_is_persisted(self, session_factory):
        stats = RunStats(products_found=3, products_added=2, products_unchanged=1, pages_fetched=2)
        report = RunReport("shop", RunStatus.COMPLETED, T0, 12.5, stats)

        await SQLAlchemyRunReporter(session_factory).report(report)

        async with session_factory() as session:
            row = (await session.execute(select(ScrapeRun))).scalar_one()
        assert row.platform == "shop"
        assert row.status == "completed"
        assert row.products_found == 3
        assert row.duration_seconds == Decimal("12.50")
        assert row.metadata_["pages_fetched"] == 2

    async def test_failing_sink_does_not_stop_others(self):
        broken = AsyncMock(spec=RunReporter)
        broken.report.side_effect = RuntimeError("sink down")
        healthy = AsyncMock(spec=RunReporter)

        report = RunReport("shop", RunStatus.PARTIAL, T0, 1.0)
        await CompositeRunReporter([broken, healthy]).report(report)

        healthy.report.assert_awaited_once_with(report)

    def test_flat_record(self):
        stats = RunStats(products_found=1, products_added=1, errors_count=2)
        record = RunReport("shop", RunStatus.BUDGET_EXCEEDED, T0, 61.0, stats).as_record()

        assert record["platform"] == "shop"
        assert record["status"] == "budget_exceeded"
        assert record["duration"] == 61.0
        assert record["errors_count"] == 2
        assert record["products_deactivated"] == 0
