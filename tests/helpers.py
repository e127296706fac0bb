"""Test doubles shared by the test modules."""

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from catalog_sync.core.exceptions import FailureKind, FetchFailure
from catalog_sync.scrapers.base import ExtractionAdapter, ProductRecord
from catalog_sync.scrapers.fetching import AttemptContext, FetchStrategy, PageFetchResult
from catalog_sync.scrapers.schemas import FetchMode, PaginationConfig, PlatformConfig


class FakeClock:
    """Monotonic clock whose sleeps only move time forward."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TickingClock:
    """UTC wall clock that moves one second per reading."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


def listing(products: List[str], next: bool = False, cursor: Optional[str] = None) -> str:
    return json.dumps({"products": products, "next": next, "cursor": cursor})


def product(sku: str, title: str = "Item", price: str = "10.00", **fields) -> str:
    return json.dumps({"sku": sku, "title": title, "price": price, **fields})


class JsonAdapter(ExtractionAdapter):
    """Adapter for the JSON pages served by ScriptedFetcher."""

    platform = "shop"

    @classmethod
    def default_config(cls) -> PlatformConfig:
        return make_config()

    def list_product_urls(self, content: str, category_url: str) -> List[str]:
        return json.loads(content)["products"]

    def has_next_page(self, content: str, page_url: str) -> bool:
        return json.loads(content).get("next", False)

    def next_cursor(self, content: str, page_url: str) -> Optional[str]:
        return json.loads(content).get("cursor")

    def extract_product(self, content: str, product_url: str) -> Optional[ProductRecord]:
        data = json.loads(content)
        if data.get("broken"):
            raise ValueError("unexpected markup")
        return ProductRecord(
            platform=self.platform,
            sku=data.get("sku", ""),
            title=data.get("title"),
            price=data.get("price"),
            sale_price=data.get("sale_price"),
            inventory_status=data.get("inventory_status", "In Stock"),
            images=data.get("images", []),
        )


def make_config(fetch_mode: FetchMode = FetchMode.HTTP, **pagination) -> PlatformConfig:
    options = {"max_pages": 10, "consecutive_error_limit": 3, "delay_range": (0.0, 0.0)}
    options.update(pagination)
    return PlatformConfig(
        platform_name="shop",
        fetch_mode=fetch_mode,
        pagination=PaginationConfig(**options),
    )


class ScriptedFetcher(FetchStrategy):
    """Fetch strategy serving canned responses.

    A response is page content, an exception to raise, or a list of
    those consumed one per call (the last one repeats). Unknown URLs fail
    as malformed (404).
    """

    def __init__(
        self,
        responses: Dict[str, object],
        mode: FetchMode = FetchMode.HTTP,
        clock: Optional[FakeClock] = None,
        latency: Optional[Dict[str, float]] = None,
        on_fetch: Optional[Callable[[str], None]] = None,
    ):
        super().__init__(delay_range=(0.0, 0.0), min_content_bytes=0)
        self.mode = mode
        self.responses = dict(responses)
        self.clock = clock
        self.latency = latency or {}
        self.on_fetch = on_fetch
        self.calls: List[str] = []
        self.closed = False

    async def fetch(self, url: str, ctx: AttemptContext) -> PageFetchResult:
        self.calls.append(url)
        if self.on_fetch:
            self.on_fetch(url)
        if self.clock and url in self.latency:
            self.clock.advance(self.latency[url])

        response = self.responses.get(url)
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if response is None:
            raise FetchFailure(url, FailureKind.MALFORMED, "HTTP 404", status_code=404)
        if isinstance(response, Exception):
            raise response
        return PageFetchResult(url=url, content=response, strategy=self.mode, status_code=200)

    async def close(self) -> None:
        self.closed = True


def transient(url: str) -> FetchFailure:
    return FetchFailure(url, FailureKind.TRANSIENT, "HTTP 503", status_code=503)


def blocked(url: str) -> FetchFailure:
    return FetchFailure(url, FailureKind.BLOCKED, "HTTP 403", status_code=403)
