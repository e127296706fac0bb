"""Listing traversal: walks one category across pages or cursor tokens.

The walker owns only traversal state. It fetches listing pages through a
FetchSelector, asks the adapter for candidate product URLs and the next
page, and yields each parsed listing page to the caller. Product pages
are handled by the caller between yields, so everything the caller does
for page N finishes before page N+1 is requested.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, List, Optional

import httpx
import structlog

from catalog_sync.core.exceptions import BudgetExceeded, FetchFailure
from catalog_sync.scrapers.base import ExtractionAdapter
from catalog_sync.scrapers.budget import RunBudget
from catalog_sync.scrapers.fetching import FetchSelector, PageFetchResult
from catalog_sync.scrapers.schemas import PaginationType

logger = structlog.get_logger(__name__)


class WalkTermination(str, Enum):
    EXHAUSTED = "exhausted"
    PAGE_CEILING = "page_ceiling"
    ERROR_CEILING = "error_ceiling"
    BUDGET = "budget"

    @property
    def clean(self) -> bool:
        """Whether the walk saw the whole listing it was allowed to see."""
        return self in (WalkTermination.EXHAUSTED, WalkTermination.PAGE_CEILING)


@dataclass
class PaginationState:
    """Traversal state of one category walk; discarded when the walk ends."""

    page: int = 1
    cursor: Optional[str] = None
    consecutive_errors: int = 0
    pages_visited: int = 0
    failed_pages: int = 0
    termination: Optional[WalkTermination] = None
    fetch_seconds: List[float] = field(default_factory=list)

    @property
    def mean_fetch_seconds(self) -> float:
        if not self.fetch_seconds:
            return 0.0
        return sum(self.fetch_seconds) / len(self.fetch_seconds)


@dataclass
class ListingPage:
    number: int
    url: str
    result: PageFetchResult
    product_urls: List[str]


def page_url(category_url: str, page: int, page_param: str) -> str:
    """URL of listing page ``page``; page 1 is the category URL as given."""
    if page <= 1:
        return category_url
    return str(httpx.URL(category_url).copy_set_param(page_param, str(page)))


def dedupe_urls(urls: List[str], limit: int) -> List[str]:
    """Drop duplicates keeping first occurrence, then cap at ``limit``."""
    return list(dict.fromkeys(u for u in urls if u))[:limit]


class PaginationWalker:
    """Drives traversal of one category listing.

    Terminates when the adapter reports no next page / no cursor, when a
    page yields no product URLs, after ``max_pages`` iterations, after
    ``consecutive_error_limit`` failed pages in a row, or when the run
    budget runs out (BudgetExceeded propagates to the caller).

    Args:
        adapter: Extraction adapter of the platform
        selector: Fetch strategy selector for this category
        budget: Run budget shared by the whole platform run
        rng: Random source for the inter-page delay
    """

    def __init__(
        self,
        adapter: ExtractionAdapter,
        selector: FetchSelector,
        budget: RunBudget,
        rng: Optional[random.Random] = None,
    ):
        self.adapter = adapter
        self.selector = selector
        self.budget = budget
        self.config = adapter.config.pagination
        self.max_products = adapter.config.max_products_per_page
        self.state = PaginationState()
        self._rng = rng or random.Random()

    def _current_url(self, category_url: str) -> str:
        if self.config.type is PaginationType.CURSOR and self.state.cursor:
            return self.adapter.cursor_url(category_url, self.state.cursor)
        page = self.state.page if self.config.type is PaginationType.REGULAR else 1
        return page_url(category_url, page, self.config.page_param)

    def _finish(self, termination: WalkTermination, log, **kw) -> None:
        self.state.termination = termination
        log.info(
            "walk_terminated",
            reason=termination.value,
            pages_visited=self.state.pages_visited,
            failed_pages=self.state.failed_pages,
            **kw,
        )

    def _advance(self, content: str, url: str) -> bool:
        """Move to the next page. Returns False when the listing has no more."""
        if self.config.type is PaginationType.CURSOR:
            cursor = self.adapter.next_cursor(content, url)
            if not cursor or cursor == self.state.cursor:
                return False
            self.state.cursor = cursor
            return True
        if not self.adapter.has_next_page(content, url):
            return False
        self.state.page += 1
        return True

    def _record_error(self, log, url: str, error: Exception) -> bool:
        """Count a failed page. Returns True when the error ceiling is reached."""
        self.state.consecutive_errors += 1
        self.state.failed_pages += 1
        log.warning(
            "listing_page_failed",
            url=url,
            error=str(error),
            consecutive_errors=self.state.consecutive_errors,
        )
        if self.state.consecutive_errors >= self.config.consecutive_error_limit:
            log.error(
                "page_error_ceiling_reached",
                limit=self.config.consecutive_error_limit,
            )
            return True
        if self.config.type is PaginationType.REGULAR:
            # Skip the broken page; a cursor page is re-attempted as is
            self.state.page += 1
        return False

    async def walk(self, category_url: str) -> AsyncIterator[ListingPage]:
        """Yield every successfully fetched and parsed listing page.

        Raises:
            BudgetExceeded: If the budget ran out or the run was cancelled
        """
        log = logger.bind(platform=self.adapter.platform, category_url=category_url)
        self.state = PaginationState()

        while True:
            if self.state.pages_visited >= self.config.max_pages:
                self._finish(WalkTermination.PAGE_CEILING, log)
                return

            url = self._current_url(category_url)
            try:
                self.budget.check(reserve=self.state.mean_fetch_seconds)
            except BudgetExceeded:
                self._finish(WalkTermination.BUDGET, log, next_url=url)
                raise

            self.state.pages_visited += 1
            started = self.budget.elapsed()
            try:
                result = await self.selector.fetch(url, self.budget)
            except BudgetExceeded:
                self._finish(WalkTermination.BUDGET, log, next_url=url)
                raise
            except FetchFailure as e:
                if self._record_error(log, url, e):
                    self._finish(WalkTermination.ERROR_CEILING, log)
                    return
                continue
            finally:
                self.state.fetch_seconds.append(self.budget.elapsed() - started)

            try:
                urls = self.adapter.list_product_urls(result.content, category_url)
            except Exception as e:
                log.warning("listing_extraction_failed", url=url, error_type=type(e).__name__)
                if self._record_error(log, url, e):
                    self._finish(WalkTermination.ERROR_CEILING, log)
                    return
                continue

            product_urls = dedupe_urls(urls, self.max_products)
            if not product_urls:
                self._finish(WalkTermination.EXHAUSTED, log, last_url=url)
                return

            self.state.consecutive_errors = 0
            log.info(
                "listing_page_parsed",
                page=self.state.pages_visited,
                url=url,
                product_count=len(product_urls),
                strategy=result.strategy.value,
            )
            yield ListingPage(
                number=self.state.pages_visited,
                url=url,
                result=result,
                product_urls=product_urls,
            )

            if not self._advance(result.content, url):
                self._finish(WalkTermination.EXHAUSTED, log)
                return
            if self.state.pages_visited >= self.config.max_pages:
                self._finish(WalkTermination.PAGE_CEILING, log)
                return

            low, high = self.config.delay_range
            try:
                await self.budget.sleep(self._rng.uniform(low, high))
            except BudgetExceeded:
                self._finish(WalkTermination.BUDGET, log)
                raise
