"""Reconciliation of freshly extracted records against the stored catalog.

For every record of a run the engine looks up the catalog entry by
(platform, sku) and decides:

- add: no entry yet
- reactivate: entry exists but was deactivated by an earlier run; it is
  brought back under the same key and counted as added
- update: a tracked field changed
- heartbeat: nothing tracked changed, only ``last_seen_at`` moves

After a complete run, entries not seen since the run started are
soft-deactivated.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import structlog

from catalog_sync.core.exceptions import ReconciliationConflict
from catalog_sync.scrapers.base import ProductRecord
from catalog_sync.services.catalog_store import CatalogEntry, CatalogStore
from catalog_sync.services.run_stats import RunStats

logger = structlog.get_logger(__name__)

# A difference in any of these turns a heartbeat into an update
TRACKED_FIELDS: Tuple[str, ...] = (
    "price",
    "sale_price",
    "title",
    "inventory_status",
    "rating",
    "review_count",
    "images",
)


class ReconciliationAction(str, Enum):
    ADD = "add"
    REACTIVATE = "reactivate"
    UPDATE = "update"
    HEARTBEAT = "heartbeat"

    @property
    def counter(self) -> str:
        """RunStats field this action is counted in."""
        return {
            ReconciliationAction.ADD: "products_added",
            ReconciliationAction.REACTIVATE: "products_added",
            ReconciliationAction.UPDATE: "products_updated",
            ReconciliationAction.HEARTBEAT: "products_unchanged",
        }[self]


@dataclass
class ReconciliationOutcome:
    sku: str
    action: ReconciliationAction
    changed_fields: Tuple[str, ...] = ()
    duplicate: bool = False


@dataclass
class ReconciliationRun:
    """Per-run reconciliation state.

    ``started_at`` is the cut-off for deactivation; ``outcomes`` remembers
    the action counted for every SKU so duplicates are counted once.
    """

    platform: str
    started_at: datetime
    outcomes: Dict[str, ReconciliationAction] = field(default_factory=dict)


def diff_fields(entry: CatalogEntry, record: ProductRecord) -> Tuple[str, ...]:
    return tuple(
        name for name in TRACKED_FIELDS if getattr(entry, name) != getattr(record, name)
    )


class ReconciliationEngine:
    """Maps extracted records onto catalog transitions.

    Args:
        store: Catalog store collaborator
        clock: Returns the current UTC time, injectable for tests
    """

    def __init__(
        self,
        store: CatalogStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.clock = clock

    def begin(self, platform: str) -> ReconciliationRun:
        return ReconciliationRun(platform=platform, started_at=self.clock())

    async def reconcile(
        self,
        run: ReconciliationRun,
        record: ProductRecord,
        stats: RunStats,
    ) -> ReconciliationOutcome:
        """Apply one validated record to the catalog and count the outcome.

        The lookup and write run under the store's per-key lock.

        Args:
            run: State returned by ``begin``
            record: Validated record (non-empty SKU)
            stats: Counters of the current run

        Returns:
            ReconciliationOutcome describing what was done
        """
        now = self.clock()
        log = logger.bind(platform=run.platform, sku=record.sku)
        duplicate = record.sku in run.outcomes

        async with self.store.lock(run.platform, record.sku):
            entry = await self.store.get(run.platform, record.sku)

            if entry is None:
                action = ReconciliationAction.ADD
                changed: Tuple[str, ...] = TRACKED_FIELDS
                entry = CatalogEntry.from_record(record, now)
            else:
                changed = diff_fields(entry, record)
                if not entry.active:
                    action = ReconciliationAction.REACTIVATE
                elif changed:
                    action = ReconciliationAction.UPDATE
                else:
                    action = ReconciliationAction.HEARTBEAT

                # Within a run the last extracted record wins outright
                if action is ReconciliationAction.HEARTBEAT and not duplicate:
                    entry.touch(now)
                else:
                    entry.apply(record, now)

            await self.store.upsert(entry)

        previous = run.outcomes.get(record.sku)
        if previous is None:
            run.outcomes[record.sku] = action
            stats.products_found += 1
            setattr(stats, action.counter, getattr(stats, action.counter) + 1)
            log.debug("record_reconciled", action=action.value, changed=list(changed))
            return ReconciliationOutcome(record.sku, action, changed)

        # Same SKU twice in one run: the catalog already holds the last
        # record, counters keep one outcome per SKU
        conflict = ReconciliationConflict(run.platform, record.sku)
        counted = previous
        if previous is ReconciliationAction.HEARTBEAT and action is ReconciliationAction.UPDATE:
            stats.products_unchanged -= 1
            stats.products_updated += 1
            counted = ReconciliationAction.UPDATE
            run.outcomes[record.sku] = counted
        log.info(
            "reconciliation_conflict",
            detail=str(conflict),
            first_action=previous.value,
            counted_as=counted.value,
        )
        return ReconciliationOutcome(record.sku, action, changed, duplicate=True)

    async def finalize(self, run: ReconciliationRun, stats: RunStats) -> int:
        """Soft-deactivate entries of the platform not seen during ``run``.

        Only call this after a run that covered the whole listing; a
        partial run would deactivate products it simply did not reach.

        Returns:
            Number of entries deactivated
        """
        count = await self.store.mark_inactive_unseen_since(run.platform, run.started_at)
        stats.products_deactivated += count
        logger.info(
            "deactivation_performed",
            platform=run.platform,
            deactivated=count,
            cutoff=run.started_at.isoformat(),
        )
        return count
