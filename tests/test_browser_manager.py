"""Tests for the Playwright browser manager against a fake Playwright driver."""

import pytest
from playwright.async_api import Error as PlaywrightError

from catalog_sync.scrapers.schemas import PlatformConfig
from catalog_sync.scrapers.utils import browser_manager as browser_module
from catalog_sync.scrapers.utils.browser_manager import BrowserManager, ContextProfile
from catalog_sync.scrapers.utils.proxy_manager import ProxyManager
from catalog_sync.scrapers.utils.user_agents import USER_AGENTS


class FakeRequest:
    def __init__(self, resource_type):
        self.resource_type = resource_type


class FakeRoute:
    def __init__(self, resource_type):
        self.request = FakeRequest(resource_type)
        self.outcome = None

    async def abort(self):
        self.outcome = "aborted"

    async def continue_(self):
        self.outcome = "continued"


class FakeContext:
    def __init__(self, options, dead=False):
        self.options = options
        self.dead = dead
        self.init_scripts = []
        self.routes = []
        self.pages = 0
        self.closed = False

    async def add_init_script(self, script):
        self.init_scripts.append(script)

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    async def new_page(self):
        if self.dead:
            raise PlaywrightError("Target page, context or browser has been closed")
        self.pages += 1
        return object()

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, dead_contexts=0):
        self.contexts = []
        self.dead_contexts = dead_contexts
        self.closed = False

    async def new_context(self, **options):
        context = FakeContext(options, dead=len(self.contexts) < self.dead_contexts)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, browser):
        self.browser = browser
        self.launches = []

    async def launch(self, **options):
        self.launches.append(options)
        return self.browser


class FakePlaywright:
    def __init__(self, browser):
        self.chromium = FakeChromium(browser)
        self.stopped = False

    async def start(self):
        return self

    async def stop(self):
        self.stopped = True


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def driver(monkeypatch, browser):
    fake = FakePlaywright(browser)
    monkeypatch.setattr(browser_module, "async_playwright", lambda: fake)
    return fake


class TestBrowserManager:
    async def test_context_follows_platform_profile(self, driver, browser):
        manager = BrowserManager()
        manager.configure(
            "blinkit",
            PlatformConfig(
                platform_name="blinkit",
                render_locale="hi-IN",
                render_timezone="Asia/Calcutta",
                render_blocked_resources=("image",),
            ),
        )

        await manager.new_page("blinkit")

        options = browser.contexts[0].options
        assert options["locale"] == "hi-IN"
        assert options["timezone_id"] == "Asia/Calcutta"
        assert options["user_agent"] in USER_AGENTS
        assert options["proxy"] is None
        assert "hi-IN" in browser.contexts[0].init_scripts[0]
        assert driver.chromium.launches[0]["headless"] is True

    async def test_unconfigured_platform_gets_default_profile(self, driver, browser):
        await BrowserManager().new_page("shop")

        assert browser.contexts[0].options["locale"] == ContextProfile().locale

    async def test_one_context_per_platform(self, driver, browser):
        manager = BrowserManager()

        await manager.new_page("flipkart")
        await manager.new_page("flipkart")
        await manager.new_page("bigbasket")

        assert len(browser.contexts) == 2
        assert browser.contexts[0].pages == 2
        assert len(driver.chromium.launches) == 1

    async def test_blocked_resource_types_are_aborted(self, driver, browser):
        manager = BrowserManager()
        manager.configure("shop", PlatformConfig(platform_name="shop", render_blocked_resources=("image", "font")))
        await manager.new_page("shop")

        _, handler = browser.contexts[0].routes[0]
        image, script = FakeRoute("image"), FakeRoute("script")
        await handler(image)
        await handler(script)

        assert image.outcome == "aborted"
        assert script.outcome == "continued"

    async def test_no_routing_without_blocked_resources(self, driver, browser):
        manager = BrowserManager()
        manager.configure("shop", PlatformConfig(platform_name="shop", render_blocked_resources=()))

        await manager.new_page("shop")

        assert browser.contexts[0].routes == []

    async def test_blocked_context_is_rotated_and_proxy_reported(self, driver, browser):
        proxies = ProxyManager(["http://p1:8080"])
        manager = BrowserManager(proxy_manager=proxies)
        await manager.new_page("shop")

        await manager.close_context("shop", blocked=True)
        await manager.new_page("shop")

        assert browser.contexts[0].options["proxy"] == {"server": "http://p1:8080"}
        assert browser.contexts[0].closed
        assert len(browser.contexts) == 2
        assert proxies.proxies[0].fail_count == 1
        assert manager.rotations == {"shop": 1}

    async def test_plain_close_does_not_blame_proxy(self, driver, browser):
        proxies = ProxyManager(["http://p1:8080"])
        manager = BrowserManager(proxy_manager=proxies)
        await manager.new_page("shop")

        await manager.close_context("shop")
        await manager.close_context("unknown", blocked=True)

        assert browser.contexts[0].closed
        assert proxies.proxies[0].fail_count == 0
        assert manager.rotations == {}

    async def test_dead_context_is_replaced(self, monkeypatch):
        browser = FakeBrowser(dead_contexts=1)
        monkeypatch.setattr(browser_module, "async_playwright", lambda: FakePlaywright(browser))
        manager = BrowserManager()

        with pytest.raises(PlaywrightError):
            await manager.new_page("shop")
        await manager.new_page("shop")

        assert browser.contexts[0].closed
        assert browser.contexts[1].pages == 1

    async def test_stop_releases_everything(self, driver, browser):
        manager = BrowserManager()
        await manager.new_page("shop")

        await manager.stop()

        assert browser.contexts[0].closed
        assert browser.closed
        assert driver.stopped
        assert not manager.started
