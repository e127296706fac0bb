"""Run report sinks consumed by monitoring."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.models.scrape_run import ScrapeRun
from catalog_sync.services.run_stats import RunReport

logger = structlog.get_logger(__name__)


class RunReporter(ABC):
    @abstractmethod
    async def report(self, report: RunReport) -> None:
        """Publish the report of a finished run."""


class LogRunReporter(RunReporter):
    """Writes the flat run record to the structured log."""

    async def report(self, report: RunReport) -> None:
        logger.info("run_report", **report.as_record())


class SQLAlchemyRunReporter(RunReporter):
    """Persists every run report as a ``scrape_runs`` row."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def report(self, report: RunReport) -> None:
        stats = report.stats
        row = ScrapeRun(
            platform=report.platform,
            status=report.status.value,
            started_at=report.started_at,
            duration_seconds=Decimal(str(round(report.duration_seconds, 2))),
            products_found=stats.products_found,
            products_added=stats.products_added,
            products_updated=stats.products_updated,
            products_unchanged=stats.products_unchanged,
            products_deactivated=stats.products_deactivated,
            errors_count=stats.errors_count,
            metadata_={
                "pages_fetched": stats.pages_fetched,
                "categories_completed": stats.categories_completed,
                "strategy_escalations": stats.strategy_escalations,
            },
        )
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()


class CompositeRunReporter(RunReporter):
    """Fans one report out to several sinks; a failing sink does not stop the others."""

    def __init__(self, reporters: List[RunReporter]):
        self.reporters = reporters

    async def report(self, report: RunReport) -> None:
        for reporter in self.reporters:
            try:
                await reporter.report(report)
            except Exception as e:
                logger.error(
                    "run_report_failed",
                    reporter=type(reporter).__name__,
                    platform=report.platform,
                    error=str(e),
                )
