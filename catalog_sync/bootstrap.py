"""Wiring of a ready-to-run ScraperService from settings.

Scheduling and argument parsing live outside this package; a scheduler
calls ``run_once`` with the category URLs of each platform.
"""

from typing import Dict, List, Optional

import structlog

from catalog_sync.config import Settings, settings as default_settings
from catalog_sync.db.session import create_engine, create_session_factory
from catalog_sync.logging_config import configure_logging
from catalog_sync.models import Base
from catalog_sync.scrapers.budget import RunBudget
from catalog_sync.scrapers.fetching import DirectFetcher, RenderedFetcher
from catalog_sync.scrapers.registry import AdapterRegistry, register_default_adapters
from catalog_sync.scrapers.schemas import PlatformConfig
from catalog_sync.scrapers.scraper_service import ScraperService
from catalog_sync.scrapers.utils.browser_manager import BrowserManager
from catalog_sync.scrapers.utils.proxy_manager import ProxyManager
from catalog_sync.scrapers.utils.retry import RetryPolicy
from catalog_sync.scrapers.utils.user_agents import IdentityPool
from catalog_sync.services.catalog_store import CatalogStore, SQLAlchemyCatalogStore
from catalog_sync.services.run_reporter import (
    CompositeRunReporter,
    LogRunReporter,
    RunReporter,
    SQLAlchemyRunReporter,
)

logger = structlog.get_logger(__name__)


async def build_scraper_service(
    settings: Optional[Settings] = None,
    store: Optional[CatalogStore] = None,
    registry: Optional[AdapterRegistry] = None,
) -> ScraperService:
    """Build a ScraperService with fetchers, registry, store and reporter.

    Without an explicit store the SQLAlchemy store on ``DATABASE_URL`` is
    used, its tables are created if missing and run reports are persisted
    next to the catalog.

    Args:
        settings: Settings to use; the module-level settings when omitted
        store: Catalog store override
        registry: Adapter registry; a fresh one with the bundled adapters
            when omitted

    Returns:
        Configured ScraperService
    """
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    registry = registry or register_default_adapters(AdapterRegistry())
    proxy_manager = ProxyManager.from_settings(settings)
    identity_pool = IdentityPool()
    browser_manager = BrowserManager(
        headless=settings.BROWSER_HEADLESS,
        proxy_manager=proxy_manager,
        identity_pool=identity_pool,
    )
    delay_range = (settings.REQUEST_DELAY_MIN, settings.REQUEST_DELAY_MAX)

    def direct_factory(config: PlatformConfig) -> DirectFetcher:
        return DirectFetcher(
            identity_pool=identity_pool,
            proxy_manager=proxy_manager,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            delay_range=delay_range,
            min_content_bytes=settings.MIN_CONTENT_BYTES,
        )

    def rendered_factory(config: PlatformConfig) -> RenderedFetcher:
        browser_manager.configure(config.platform_name, config)
        return RenderedFetcher(
            browser_manager,
            context_name=config.platform_name,
            timeout_ms=settings.RENDER_TIMEOUT_MS,
            wait_selector=config.render_wait_selector,
            scroll_steps=config.render_scroll_steps,
            delay_range=delay_range,
            min_content_bytes=settings.MIN_CONTENT_BYTES,
        )

    reporter: RunReporter = LogRunReporter()
    if store is None:
        engine = create_engine(settings)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = create_session_factory(engine)
        store = SQLAlchemyCatalogStore(session_factory, engine=engine)
        reporter = CompositeRunReporter([LogRunReporter(), SQLAlchemyRunReporter(session_factory)])

    logger.info(
        "scraper_service_built",
        platforms=registry.platforms(),
        store=type(store).__name__,
        run_max_seconds=settings.RUN_MAX_DURATION_SECONDS,
        environment=settings.ENVIRONMENT,
    )
    return ScraperService(
        registry=registry,
        store=store,
        direct_factory=direct_factory,
        rendered_factory=rendered_factory,
        retry_policy=RetryPolicy.from_settings(settings),
        reporter=reporter,
        budget_factory=lambda: RunBudget(settings.RUN_MAX_DURATION_SECONDS),
        browser_manager=browser_manager,
    )


async def run_once(
    targets: Dict[str, List[str]],
    settings: Optional[Settings] = None,
    store: Optional[CatalogStore] = None,
):
    """Run every platform in ``targets`` once and release all resources.

    Args:
        targets: Category URLs per platform name

    Returns:
        List of RunReport, one per platform run that finished
    """
    service = await build_scraper_service(settings, store=store)
    try:
        return await service.run_all(targets)
    finally:
        await service.close()
