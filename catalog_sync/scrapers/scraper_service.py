"""Scraper orchestration service.

Connects the pieces of a platform run: for every category URL a
PaginationWalker walks the listing through a FetchSelector, every new
product page is fetched, handed to the platform's extraction adapter,
validated and reconciled into the catalog. Counters are collected in a
run-scoped RunStats and published as a RunReport at the end.
"""

import asyncio
import random
from contextlib import aclosing
from typing import Callable, Dict, List, Optional

import structlog

from catalog_sync.core.exceptions import (
    BudgetExceeded,
    ExtractionFailure,
    ExtractionFailureKind,
    FetchFailure,
)
from catalog_sync.scrapers.base import ExtractionAdapter, validate_record
from catalog_sync.scrapers.budget import RunBudget
from catalog_sync.scrapers.fetching import FetchSelector, FetchStrategy
from catalog_sync.scrapers.pagination import PaginationWalker, WalkTermination
from catalog_sync.scrapers.registry import AdapterRegistry
from catalog_sync.scrapers.schemas import PlatformConfig
from catalog_sync.scrapers.utils.browser_manager import BrowserManager
from catalog_sync.scrapers.utils.normalizer import normalize_url
from catalog_sync.scrapers.utils.retry import RetryPolicy
from catalog_sync.services.catalog_store import CatalogStore
from catalog_sync.services.reconciliation import ReconciliationEngine, ReconciliationRun
from catalog_sync.services.run_reporter import LogRunReporter, RunReporter
from catalog_sync.services.run_stats import RunReport, RunStats, RunStatus

logger = structlog.get_logger(__name__)

StrategyFactory = Callable[[PlatformConfig], Optional[FetchStrategy]]


class ScraperService:
    """Runs platforms end to end: walk, fetch, extract, reconcile, report.

    One platform run is sequential. Several platforms can run concurrently
    through ``run_all``; they share nothing but the catalog store.

    Args:
        registry: Adapter registry
        store: Catalog store
        direct_factory: Builds the direct strategy for a platform run
        rendered_factory: Builds the rendered strategy for a platform run
        retry_policy: Retry policy for every page fetch
        reporter: Sink for run reports
        budget_factory: Builds the budget of a run that was given none
        engine: Reconciliation engine, built on ``store`` when omitted
        browser_manager: Stopped by ``close()`` when given
        rng: Random source for politeness delays
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        store: CatalogStore,
        direct_factory: Optional[StrategyFactory] = None,
        rendered_factory: Optional[StrategyFactory] = None,
        retry_policy: Optional[RetryPolicy] = None,
        reporter: Optional[RunReporter] = None,
        budget_factory: Optional[Callable[[], RunBudget]] = None,
        engine: Optional[ReconciliationEngine] = None,
        browser_manager: Optional[BrowserManager] = None,
        rng: Optional[random.Random] = None,
    ):
        self.registry = registry
        self.store = store
        self.direct_factory = direct_factory
        self.rendered_factory = rendered_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.reporter = reporter or LogRunReporter()
        self.budget_factory = budget_factory or RunBudget
        self.engine = engine or ReconciliationEngine(store)
        self.browser_manager = browser_manager
        self._rng = rng or random.Random()
        self._budgets: Dict[str, RunBudget] = {}
        self.logger = logger.bind(service="scraper_service")

    async def run_platform(
        self,
        platform: str,
        category_urls: List[str],
        budget: Optional[RunBudget] = None,
    ) -> RunReport:
        """Run one platform over its category URLs.

        Deactivation of unseen products only happens when every category
        walk terminated cleanly (listing exhausted or page ceiling).

        Args:
            platform: Registered platform name
            category_urls: Listing URLs to walk, in order
            budget: Run budget; a fresh one from ``budget_factory`` when omitted

        Returns:
            RunReport of the run

        Raises:
            AdapterNotFoundError: If the platform is not registered
        """
        adapter = self.registry.create(platform)
        budget = budget or self.budget_factory()
        self._budgets[platform] = budget

        stats = RunStats()
        run = self.engine.begin(platform)
        log = self.logger.bind(platform=platform)
        log.info("platform_run_started", categories=len(category_urls), fetch_mode=adapter.config.fetch_mode.value)

        direct = self.direct_factory(adapter.config) if self.direct_factory else None
        rendered = self.rendered_factory(adapter.config) if self.rendered_factory else None

        status: Optional[RunStatus] = None
        clean = True
        seen_urls: Dict[str, None] = {}
        try:
            for category_url in category_urls:
                try:
                    termination = await self._walk_category(
                        adapter, direct, rendered, budget, stats, run, category_url, seen_urls
                    )
                except BudgetExceeded as e:
                    status = RunStatus.CANCELLED if e.cancelled else RunStatus.BUDGET_EXCEEDED
                    log.warning(
                        "budget_exhausted",
                        reason=e.reason,
                        category_url=category_url,
                        elapsed=round(budget.elapsed(), 2),
                    )
                    break
                except Exception as e:
                    clean = False
                    stats.errors_count += 1
                    log.error(
                        "category_failed",
                        category_url=category_url,
                        error=str(e),
                        exc_info=True,
                    )
                    continue

                if termination is not None and termination.clean:
                    stats.categories_completed += 1
                else:
                    clean = False
        finally:
            self._budgets.pop(platform, None)
            for strategy in (direct, rendered):
                if strategy is not None:
                    await strategy.close()

        if status is None:
            status = RunStatus.COMPLETED if clean else RunStatus.PARTIAL

        if status is RunStatus.COMPLETED:
            await self.engine.finalize(run, stats)
        else:
            log.info("deactivation_skipped", status=status.value)

        report = RunReport(
            platform=platform,
            status=status,
            started_at=run.started_at,
            duration_seconds=budget.elapsed(),
            stats=stats,
        )
        log.info("platform_run_complete", status=status.value, **stats.as_dict())
        await self.reporter.report(report)
        return report

    async def _walk_category(
        self,
        adapter: ExtractionAdapter,
        direct: Optional[FetchStrategy],
        rendered: Optional[FetchStrategy],
        budget: RunBudget,
        stats: RunStats,
        run: ReconciliationRun,
        category_url: str,
        seen_urls: Dict[str, None],
    ) -> Optional[WalkTermination]:
        selector = FetchSelector(
            direct,
            rendered,
            self.retry_policy,
            mode=adapter.config.fetch_mode,
            platform=adapter.platform,
        )
        walker = PaginationWalker(adapter, selector, budget, rng=self._rng)

        try:
            async with aclosing(walker.walk(category_url)) as pages:
                async for page in pages:
                    stats.pages_fetched += 1
                    selector.mark_extracted()
                    for product_url in page.product_urls:
                        # Tracking-parameter variants are one product
                        key = normalize_url(product_url)
                        if key in seen_urls:
                            continue
                        seen_urls[key] = None
                        await self._process_product(adapter, selector, budget, stats, run, product_url)
        except BudgetExceeded:
            if walker.state.termination is None:
                walker.state.termination = WalkTermination.BUDGET
            raise
        finally:
            stats.errors_count += walker.state.failed_pages
            if selector.escalated:
                stats.strategy_escalations += 1

        return walker.state.termination

    async def _process_product(
        self,
        adapter: ExtractionAdapter,
        selector: FetchSelector,
        budget: RunBudget,
        stats: RunStats,
        run: ReconciliationRun,
        product_url: str,
    ) -> None:
        """Fetch, extract, validate and reconcile one product page.

        Failures are counted and logged; only BudgetExceeded propagates.
        """
        log = self.logger.bind(platform=adapter.platform, url=product_url)

        try:
            result = await selector.fetch(product_url, budget)
        except FetchFailure as e:
            stats.errors_count += 1
            log.warning("product_fetch_failed", kind=e.kind.value, status_code=e.status_code, error=str(e))
            return
        except BudgetExceeded:
            raise
        except Exception as e:
            stats.errors_count += 1
            log.error("product_fetch_crashed", error=str(e), error_type=type(e).__name__, exc_info=True)
            return

        try:
            try:
                record = adapter.extract_product(result.content, product_url)
            except Exception as e:
                raise ExtractionFailure(
                    product_url, ExtractionFailureKind.ADAPTER_ERROR, f"{type(e).__name__}: {e}"
                ) from e
            record = validate_record(record, adapter.platform, product_url)
        except ExtractionFailure as e:
            stats.errors_count += 1
            log.warning("record_dropped", reason=e.kind.value, error=str(e))
            return

        selector.mark_extracted()
        try:
            await self.engine.reconcile(run, record, stats)
        except Exception as e:
            stats.errors_count += 1
            log.error("reconciliation_failed", sku=record.sku, error=str(e), exc_info=True)

    async def run_all(self, targets: Dict[str, List[str]]) -> List[RunReport]:
        """Run several platforms concurrently as isolated tasks.

        Args:
            targets: Category URLs per platform

        Returns:
            Reports of the runs that finished; a crashed run is logged and
            left out
        """
        platforms = list(targets)
        results = await asyncio.gather(
            *(self.run_platform(platform, targets[platform]) for platform in platforms),
            return_exceptions=True,
        )

        reports = []
        for platform, result in zip(platforms, results):
            if isinstance(result, Exception):
                self.logger.error(
                    "platform_run_failed",
                    platform=platform,
                    error=str(result),
                    error_type=type(result).__name__,
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                reports.append(result)
        return reports

    def cancel(self, platform: Optional[str] = None) -> None:
        """Stop running platforms (all of them by default) at their next check point."""
        for name, budget in list(self._budgets.items()):
            if platform is None or name == platform:
                budget.cancel()

    async def close(self) -> None:
        if self.browser_manager is not None:
            await self.browser_manager.stop()
        await self.store.close()
