"""Tests for the reconciliation engine."""

from decimal import Decimal

import pytest

from catalog_sync.scrapers.base import ProductRecord
from catalog_sync.services.reconciliation import ReconciliationAction, ReconciliationEngine
from catalog_sync.services.run_stats import RunStats


def record(sku: str, price: str = "10.00", **fields) -> ProductRecord:
    fields.setdefault("title", f"Product {sku}")
    return ProductRecord(platform="shop", sku=sku, price=price, **fields)


def assert_counters_consistent(stats: RunStats) -> None:
    assert stats.products_found == (
        stats.products_added + stats.products_updated + stats.products_unchanged
    )


@pytest.fixture
def engine(store, wall_clock) -> ReconciliationEngine:
    return ReconciliationEngine(store, clock=wall_clock)


async def run_once(engine, records, finalize=True) -> RunStats:
    stats = RunStats()
    run = engine.begin("shop")
    for r in records:
        await engine.reconcile(run, r, stats)
        assert_counters_consistent(stats)
    if finalize:
        await engine.finalize(run, stats)
    return stats


class TestReconcile:
    async def test_new_sku_is_added(self, engine, store):
        stats = RunStats()
        run = engine.begin("shop")

        outcome = await engine.reconcile(run, record("A"), stats)

        assert outcome.action is ReconciliationAction.ADD
        assert stats.products_found == 1
        assert stats.products_added == 1
        entry = await store.get("shop", "A")
        assert entry.active
        assert entry.price == Decimal("10.00")
        assert entry.first_seen_at == entry.last_seen_at

    async def test_unchanged_record_is_heartbeat(self, engine, store):
        await run_once(engine, [record("A")])
        first_seen = (await store.get("shop", "A")).first_seen_at

        stats = RunStats()
        run = engine.begin("shop")
        outcome = await engine.reconcile(run, record("A"), stats)

        assert outcome.action is ReconciliationAction.HEARTBEAT
        assert stats.products_unchanged == 1
        entry = await store.get("shop", "A")
        assert entry.first_seen_at == first_seen
        assert entry.last_seen_at > first_seen

    async def test_changed_tracked_field_is_update(self, engine, store):
        await run_once(engine, [record("A")])

        stats = RunStats()
        outcome = await engine.reconcile(engine.begin("shop"), record("A", price="12.50"), stats)

        assert outcome.action is ReconciliationAction.UPDATE
        assert outcome.changed_fields == ("price",)
        assert stats.products_updated == 1
        assert (await store.get("shop", "A")).price == Decimal("12.50")

    async def test_heartbeat_only_refreshes_last_seen(self, engine, store):
        await run_once(engine, [record("A", brand="Acme", description="Old copy")])
        before = await store.get("shop", "A")

        stats = RunStats()
        outcome = await engine.reconcile(
            engine.begin("shop"), record("A", brand="Acme Corp", description="New copy"), stats
        )

        assert outcome.action is ReconciliationAction.HEARTBEAT
        entry = await store.get("shop", "A")
        assert entry.brand == "Acme"
        assert entry.description == "Old copy"
        assert entry.last_seen_at > before.last_seen_at

    async def test_duplicate_heartbeat_still_takes_last_record(self, engine, store):
        await run_once(engine, [record("A", brand="Acme")])

        stats = RunStats()
        run = engine.begin("shop")
        await engine.reconcile(run, record("A", brand="Acme"), stats)
        outcome = await engine.reconcile(run, record("A", brand="Acme Corp"), stats)

        assert outcome.duplicate
        assert stats.products_unchanged == 1
        assert (await store.get("shop", "A")).brand == "Acme Corp"

    async def test_duplicate_sku_counted_once_last_write_wins(self, engine, store):
        stats = RunStats()
        run = engine.begin("shop")

        await engine.reconcile(run, record("A", price="10.00"), stats)
        outcome = await engine.reconcile(run, record("A", price="11.00"), stats)

        assert outcome.duplicate
        assert stats.products_found == 1
        assert stats.products_added == 1
        assert_counters_consistent(stats)
        assert (await store.get("shop", "A")).price == Decimal("11.00")

    async def test_duplicate_heartbeat_then_update_counts_as_update(self, engine):
        await run_once(engine, [record("A")])

        stats = RunStats()
        run = engine.begin("shop")
        await engine.reconcile(run, record("A"), stats)
        await engine.reconcile(run, record("A", price="9.00"), stats)

        assert stats.products_found == 1
        assert stats.products_unchanged == 0
        assert stats.products_updated == 1


class TestRunLifecycle:
    async def test_rerun_without_changes_is_idempotent(self, engine, store):
        records = [record("A"), record("B"), record("C")]
        await run_once(engine, records)
        before = {e.sku: (e.price, e.title, e.active) for e in store.all()}

        stats = await run_once(engine, records)

        assert stats.products_found == 3
        assert stats.products_unchanged == 3
        assert stats.products_added == stats.products_updated == stats.products_deactivated == 0
        assert {e.sku: (e.price, e.title, e.active) for e in store.all()} == before

    async def test_unseen_product_deactivated_once(self, engine, store):
        await run_once(engine, [record("A"), record("B")])

        second = await run_once(engine, [record("A")])
        third = await run_once(engine, [record("A")])

        assert second.products_deactivated == 1
        assert third.products_deactivated == 0
        entry = await store.get("shop", "B")
        assert not entry.active
        assert entry.deactivated_at is not None

    async def test_deactivated_product_reactivated_under_same_key(self, engine, store):
        await run_once(engine, [record("A"), record("B")])
        await run_once(engine, [record("A")])
        first_seen = (await store.get("shop", "B")).first_seen_at

        stats = await run_once(engine, [record("A"), record("B")])

        assert stats.products_added == 1
        assert stats.products_unchanged == 1
        entry = await store.get("shop", "B")
        assert entry.active
        assert entry.deactivated_at is None
        assert entry.first_seen_at == first_seen
        assert len(store.all()) == 2

    async def test_deactivation_is_scoped_to_platform(self, engine, store):
        other = ProductRecord(platform="other", sku="X", title="Other")
        stats = RunStats()
        await engine.reconcile(engine.begin("other"), other, stats)

        await run_once(engine, [record("A")])

        assert (await store.get("other", "X")).active

    async def test_nothing_is_ever_deleted(self, engine, store):
        await run_once(engine, [record("A"), record("B"), record("C")])
        await run_once(engine, [])

        assert len(store.all()) == 3
        assert not any(e.active for e in store.all())
