"""Fetch strategies: direct HTTP and browser-rendered page retrieval.

Both strategies share one contract: ``fetch(url, ctx)`` returns a
PageFetchResult or raises FetchFailure classified as transient, blocked
or malformed. FetchSelector decides which strategy a category uses and
escalates from direct to rendered once, following a fixed rule.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from catalog_sync.core.exceptions import FailureKind, FetchFailure
from catalog_sync.scrapers.budget import RunBudget
from catalog_sync.scrapers.schemas import FetchMode
from catalog_sync.scrapers.utils.browser_manager import BrowserManager
from catalog_sync.scrapers.utils.proxy_manager import NoProxyManager, ProxyManager
from catalog_sync.scrapers.utils.retry import RetryPolicy
from catalog_sync.scrapers.utils.user_agents import IdentityPool

logger = structlog.get_logger(__name__)

BLOCKED_STATUSES = frozenset({401, 403})
TRANSIENT_STATUSES = frozenset({408, 425, 429})


@dataclass
class PageFetchResult:
    """Raw page content plus how it was obtained. Discarded after extraction."""

    url: str
    content: str
    strategy: FetchMode
    status_code: int
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class AttemptContext:
    attempt: int
    budget: RunBudget


def classify_status(status_code: int) -> Optional[FailureKind]:
    """Map a non-success HTTP status onto the failure taxonomy."""
    if 200 <= status_code < 300:
        return None
    if status_code in BLOCKED_STATUSES:
        return FailureKind.BLOCKED
    if status_code in TRANSIENT_STATUSES or status_code >= 500:
        return FailureKind.TRANSIENT
    return FailureKind.MALFORMED


class FetchStrategy(ABC):
    """Obtains raw page content for a URL."""

    mode: FetchMode

    def __init__(
        self,
        delay_range: Tuple[float, float] = (3.0, 8.0),
        min_content_bytes: int = 1000,
        rng: Optional[random.Random] = None,
    ):
        self.delay_range = delay_range
        self.min_content_bytes = min_content_bytes
        self._rng = rng or random.Random()

    async def _pre_request_delay(self, ctx: AttemptContext) -> None:
        """Randomized pause before each request so traffic has no rhythm."""
        low, high = self.delay_range
        await ctx.budget.sleep(self._rng.uniform(low, high))

    def _check_content(self, url: str, status_code: int, content: str) -> None:
        kind = classify_status(status_code)
        if kind is not None:
            raise FetchFailure(url, kind, f"HTTP {status_code}", status_code=status_code)
        size = len(content.encode("utf-8", errors="ignore"))
        if size < self.min_content_bytes:
            raise FetchFailure(
                url,
                FailureKind.BLOCKED,
                f"{size} bytes is below the {self.min_content_bytes} byte plausibility threshold",
                status_code=status_code,
            )

    @abstractmethod
    async def fetch(self, url: str, ctx: AttemptContext) -> PageFetchResult:
        """Fetch one page.

        Raises:
            FetchFailure: transient, blocked or malformed
            BudgetExceeded: If the politeness delay would overrun the budget
        """

    async def close(self) -> None:
        """Release network resources."""


class DirectFetcher(FetchStrategy):
    """Plain HTTP strategy with a rotated identity per request."""

    mode = FetchMode.HTTP

    def __init__(
        self,
        identity_pool: Optional[IdentityPool] = None,
        proxy_manager: Optional[ProxyManager] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.identity_pool = identity_pool or IdentityPool()
        self.proxy_manager = proxy_manager or NoProxyManager()
        self.timeout = timeout
        self._transport = transport
        self._clients: Dict[Optional[str], httpx.AsyncClient] = {}

    def _client_for(self, proxy_url: Optional[str]) -> httpx.AsyncClient:
        client = self._clients.get(proxy_url)
        if client is None:
            client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                # An explicit transport owns connectivity, proxies included
                proxy=proxy_url if self._transport is None else None,
                transport=self._transport,
            )
            self._clients[proxy_url] = client
        return client

    async def fetch(self, url: str, ctx: AttemptContext) -> PageFetchResult:
        await self._pre_request_delay(ctx)

        proxy_url = self.proxy_manager.get_proxy()
        headers = self.identity_pool.next_headers()
        client = self._client_for(proxy_url)

        logger.debug(
            "direct_fetch",
            url=url,
            attempt=ctx.attempt,
            user_agent=headers["User-Agent"][:50],
            has_proxy=bool(proxy_url),
        )

        try:
            response = await client.get(url, headers=headers)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise FetchFailure(url, FailureKind.MALFORMED, str(e)) from e
        except httpx.TooManyRedirects as e:
            # Redirect loops are a common way of turning scrapers away
            self.proxy_manager.mark_failed(proxy_url)
            raise FetchFailure(url, FailureKind.BLOCKED, str(e)) from e
        except httpx.HTTPError as e:
            self.proxy_manager.mark_failed(proxy_url)
            raise FetchFailure(url, FailureKind.TRANSIENT, f"{type(e).__name__}: {e}"[:200]) from e

        try:
            self._check_content(url, response.status_code, response.text)
        except FetchFailure as failure:
            if failure.retriable:
                self.proxy_manager.mark_failed(proxy_url)
            raise

        self.proxy_manager.mark_success(proxy_url)
        return PageFetchResult(
            url=url,
            content=response.text,
            strategy=self.mode,
            status_code=response.status_code,
        )

    async def close(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()


class RenderedFetcher(FetchStrategy):
    """JavaScript-capable strategy backed by a Playwright browser."""

    mode = FetchMode.RENDERED

    def __init__(
        self,
        browser_manager: BrowserManager,
        context_name: str = "default",
        timeout_ms: int = 30000,
        wait_selector: Optional[str] = None,
        scroll_steps: int = 0,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.browser_manager = browser_manager
        self.context_name = context_name
        self.timeout_ms = timeout_ms
        self.wait_selector = wait_selector
        self.scroll_steps = scroll_steps

    async def fetch(self, url: str, ctx: AttemptContext) -> PageFetchResult:
        await self._pre_request_delay(ctx)

        page = None
        try:
            page = await self.browser_manager.new_page(self.context_name)
            logger.debug("rendered_fetch", url=url, attempt=ctx.attempt)
            response = await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
            status_code = response.status if response else 200

            if self.wait_selector:
                try:
                    await page.wait_for_selector(self.wait_selector, timeout=self.timeout_ms // 3)
                except PlaywrightTimeoutError:
                    logger.debug("wait_selector_missing", url=url, selector=self.wait_selector)

            for _ in range(self.scroll_steps):
                await page.evaluate("window.scrollBy(0, document.body.scrollHeight)")
                await page.wait_for_timeout(800)

            content = await page.content()
        except PlaywrightTimeoutError as e:
            raise FetchFailure(url, FailureKind.TRANSIENT, "navigation timeout") from e
        except PlaywrightError as e:
            message = str(e)
            kind = FailureKind.MALFORMED if "Cannot navigate to invalid URL" in message else FailureKind.TRANSIENT
            raise FetchFailure(url, kind, message[:200]) from e
        finally:
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError as e:
                    logger.debug("page_close_failed", url=url, error=str(e))

        try:
            self._check_content(url, status_code, content)
        except FetchFailure as failure:
            if failure.kind is FailureKind.BLOCKED:
                # Fingerprinted: next attempt gets a fresh context and user agent
                await self.browser_manager.close_context(self.context_name, blocked=True)
            raise

        return PageFetchResult(url=url, content=content, strategy=self.mode, status_code=status_code)


class FetchSelector:
    """Two-state fetch strategy selector for one category walk.

    Starts in the platform's configured mode. When a retried direct fetch
    still fails (other than malformed) before the category produced a
    single successful extraction, it switches to the rendered strategy for
    the rest of the walk. The switch is one-way: no per-request flapping.
    """

    def __init__(
        self,
        direct: Optional[FetchStrategy],
        rendered: Optional[FetchStrategy],
        retry_policy: RetryPolicy,
        mode: FetchMode = FetchMode.HTTP,
        platform: str = "",
    ):
        if mode is FetchMode.HTTP and direct is None:
            raise ValueError("HTTP mode needs a direct fetch strategy")
        if mode is FetchMode.RENDERED and rendered is None:
            raise ValueError("Rendered mode needs a rendered fetch strategy")
        self._strategies = {FetchMode.HTTP: direct, FetchMode.RENDERED: rendered}
        self._retry = retry_policy
        self._mode = mode
        self._extracted = False
        self.escalated = False
        self.logger = logger.bind(platform=platform)

    @property
    def mode(self) -> FetchMode:
        return self._mode

    def mark_extracted(self) -> None:
        """Record that the current strategy produced usable data."""
        self._extracted = True

    def _should_escalate(self, failure: FetchFailure) -> bool:
        return (
            self._mode is FetchMode.HTTP
            and self._strategies[FetchMode.RENDERED] is not None
            and not self._extracted
            and failure.retriable
        )

    async def _fetch_with(self, mode: FetchMode, url: str, budget: RunBudget) -> PageFetchResult:
        strategy = self._strategies[mode]
        return await self._retry.run(
            lambda attempt: strategy.fetch(url, AttemptContext(attempt=attempt, budget=budget)),
            budget,
        )

    async def fetch(self, url: str, budget: RunBudget) -> PageFetchResult:
        """Fetch ``url`` with the current strategy under the retry policy.

        Raises:
            FetchFailure: Once retries (and a possible escalation) are exhausted
            BudgetExceeded: If the run budget ran out
        """
        try:
            return await self._fetch_with(self._mode, url, budget)
        except FetchFailure as failure:
            if not self._should_escalate(failure):
                raise
            self._mode = FetchMode.RENDERED
            self.escalated = True
            self.logger.warning(
                "fetch_strategy_escalated",
                url=url,
                from_mode=FetchMode.HTTP.value,
                to_mode=FetchMode.RENDERED.value,
                kind=failure.kind.value,
            )
        return await self._fetch_with(self._mode, url, budget)
