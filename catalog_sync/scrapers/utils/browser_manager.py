"""Playwright browser shared by the rendered fetch strategy.

One browser process serves every platform; each platform renders in its
own context (cookies, locale, identity, proxy). A context that gets
blocked is thrown away and rebuilt with a fresh identity on next use.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError

from catalog_sync.scrapers.schemas import PlatformConfig
from catalog_sync.scrapers.utils.proxy_manager import NoProxyManager, ProxyManager
from catalog_sync.scrapers.utils.user_agents import IdentityPool

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ContextProfile:
    """Rendering settings of one platform's browser context."""

    locale: str = "en-IN"
    timezone_id: str = "Asia/Kolkata"
    blocked_resources: Tuple[str, ...] = ("image", "media", "font")
    viewport_width: int = 1366
    viewport_height: int = 768

    @classmethod
    def from_config(cls, config: PlatformConfig) -> "ContextProfile":
        return cls(
            locale=config.render_locale,
            timezone_id=config.render_timezone,
            blocked_resources=tuple(config.render_blocked_resources),
        )


class BrowserManager:
    """Launches Playwright lazily and keeps one context per platform.

    Args:
        headless: Run Chromium without a window
        proxy_manager: Proxy pool; a context keeps the proxy it was built with
        identity_pool: Source of the user agent and language of each context
    """

    def __init__(
        self,
        headless: bool = True,
        proxy_manager: Optional[ProxyManager] = None,
        identity_pool: Optional[IdentityPool] = None,
    ):
        self._headless = headless
        self._proxy_manager = proxy_manager or NoProxyManager()
        self._identity_pool = identity_pool or IdentityPool()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self._profiles: Dict[str, ContextProfile] = {}
        self._contexts: Dict[str, BrowserContext] = {}
        self._context_proxies: Dict[str, Optional[str]] = {}
        self.rotations: Dict[str, int] = {}

    @property
    def started(self) -> bool:
        return self._browser is not None

    def configure(self, name: str, config: PlatformConfig) -> None:
        """Use the platform's rendering settings for context ``name``."""
        self._profiles[name] = ContextProfile.from_config(config)

    async def _ensure_browser(self) -> Browser:
        if self._browser is None:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                ],
            )
            logger.info("browser_started", headless=self._headless)
        return self._browser

    async def get_context(self, name: str = "default") -> BrowserContext:
        """Context of platform ``name``, created on first use."""
        async with self._lock:
            context = self._contexts.get(name)
            if context is not None:
                return context

            browser = await self._ensure_browser()
            profile = self._profiles.get(name, ContextProfile())
            headers = self._identity_pool.next_headers()
            proxy_url = self._proxy_manager.get_proxy()

            context = await browser.new_context(
                user_agent=headers["User-Agent"],
                extra_http_headers={"Accept-Language": headers["Accept-Language"]},
                viewport={"width": profile.viewport_width, "height": profile.viewport_height},
                locale=profile.locale,
                timezone_id=profile.timezone_id,
                proxy={"server": proxy_url} if proxy_url else None,
            )
            await context.add_init_script(stealth_script(profile.locale))
            if profile.blocked_resources:
                blocked = frozenset(profile.blocked_resources)

                async def filter_resources(route: Route) -> None:
                    if route.request.resource_type in blocked:
                        await route.abort()
                    else:
                        await route.continue_()

                await context.route("**/*", filter_resources)

            self._contexts[name] = context
            self._context_proxies[name] = proxy_url
            logger.info(
                "browser_context_created",
                name=name,
                locale=profile.locale,
                has_proxy=bool(proxy_url),
            )
            return context

    async def new_page(self, name: str = "default") -> Page:
        """Open a page in the platform's context.

        A context that can no longer open pages is dropped so the next
        call builds a new one.
        """
        context = await self.get_context(name)
        try:
            return await context.new_page()
        except PlaywrightError:
            await self._discard(name)
            raise

    async def close_context(self, name: str, blocked: bool = False) -> None:
        """Drop the context of ``name``.

        With ``blocked`` the context's proxy is reported as failed, and the
        next page of the platform is rendered under a fresh identity.
        """
        proxy_url = self._context_proxies.get(name)
        closed = await self._discard(name)
        if closed and blocked:
            self._proxy_manager.mark_failed(proxy_url)
            self.rotations[name] = self.rotations.get(name, 0) + 1
            logger.warning("browser_context_rotated", name=name, rotations=self.rotations[name])

    async def _discard(self, name: str) -> bool:
        async with self._lock:
            context = self._contexts.pop(name, None)
            self._context_proxies.pop(name, None)
        if context is None:
            return False
        try:
            await context.close()
        except PlaywrightError as e:
            logger.debug("browser_context_close_failed", name=name, error=str(e))
        return True

    async def stop(self) -> None:
        """Close every context, the browser and Playwright."""
        for name in list(self._contexts):
            await self._discard(name)
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                logger.info("browser_stopped")


def stealth_script(locale: str) -> str:
    """Init script hiding the usual automation markers."""
    language = locale.split("-")[0]
    return f"""
Object.defineProperty(navigator, 'webdriver', {{ get: () => undefined }});
Object.defineProperty(navigator, 'languages', {{ get: () => ['{locale}', '{language}'] }});
window.chrome = {{ runtime: {{}} }};
"""
