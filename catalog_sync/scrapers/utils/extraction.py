"""Helpers shared by the HTML extraction adapters.

Fields are usually available from more than one place on a page (JSON-LD,
meta tags, visible markup). ``first_of`` tries those sources in priority
order and keeps the first usable value.
"""

import hashlib
import json
import re
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup, Tag

from catalog_sync.scrapers.utils.normalizer import (
    PriceNormalizer,
    clean_text,
    parse_count,
    parse_rating,
)

logger = structlog.get_logger(__name__)

__all__ = [
    "absolute_url",
    "all_texts",
    "currency_from_text",
    "first_of",
    "image_sources",
    "json_ld_product",
    "ld_value",
    "make_soup",
    "parse_count",
    "parse_price",
    "parse_rating",
    "select_first",
    "select_text",
    "sku_from_url",
    "table_pairs",
    "variant_options",
]


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def first_of(*sources: Any) -> Any:
    """Value of the first source that yields something non-empty.

    A source is either a plain value or a zero-argument callable. A
    callable that raises is logged and skipped, so one broken source
    never hides the fallbacks behind it.
    """
    for source in sources:
        if callable(source):
            try:
                value = source()
            except Exception as e:
                logger.debug("extraction_source_failed", error=str(e), error_type=type(e).__name__)
                continue
        else:
            value = source
        if not _is_empty(value):
            return value
    return None


def make_soup(content: str) -> BeautifulSoup:
    return BeautifulSoup(content, "html.parser")


def select_first(soup: BeautifulSoup, selectors: Iterable[str]) -> Optional[Tag]:
    """First element matched by the first selector that matches anything.

    Platforms rotate their generated class names, so adapters keep a list
    of known selectors, newest first.
    """
    for selector in selectors:
        element = soup.select_one(selector)
        if element is not None:
            return element
    return None


def select_text(soup: BeautifulSoup, selectors: Iterable[str]) -> Optional[str]:
    element = select_first(soup, selectors)
    if element is None:
        return None
    if element.name == "meta":
        return clean_text(element.get("content"))
    return clean_text(element.get_text(" "))


def all_texts(soup: BeautifulSoup, selector: str) -> List[str]:
    texts = (clean_text(node.get_text(" ")) for node in soup.select(selector))
    return list(dict.fromkeys(t for t in texts if t))


def image_sources(soup: BeautifulSoup, selector: str) -> List[str]:
    """Absolute ``src`` (or lazy ``data-src``) values of matching images."""
    urls = []
    for node in soup.select(selector):
        src = node.get("src") or node.get("data-src")
        if src and src.startswith("http"):
            urls.append(src)
    return list(dict.fromkeys(urls))


def table_pairs(soup: BeautifulSoup, row_selector: str) -> dict:
    """Label/value pairs from a two-column specification table."""
    pairs = {}
    for row in soup.select(row_selector):
        cells = row.find_all(["th", "td"])
        if len(cells) < 2:
            continue
        label = clean_text(cells[0].get_text(" "))
        value = clean_text(cells[1].get_text(" "))
        if label and value:
            pairs[label] = value
    return pairs


def parse_price(value: Any) -> Optional[Decimal]:
    """Decimal amount from a price string or JSON-LD number."""
    return PriceNormalizer.extract_price_from_text(value)


def variant_options(soup: BeautifulSoup, selector: str, kind: str) -> List[Dict[str, str]]:
    """Variant swatches as ``{"type": kind, "value": label}``, label from ``title`` or text."""
    options = []
    for node in soup.select(selector):
        value = clean_text(node.get("title") or node.get_text(" "))
        if value:
            options.append({"type": kind, "value": value})
    return options


CURRENCY_SYMBOLS = {
    "₹": "INR",
    "$": "USD",
    "£": "GBP",
    "€": "EUR",
    "¥": "JPY",
    "₩": "KRW",
    "₽": "RUB",
    "₫": "VND",
    "฿": "THB",
    "₦": "NGN",
}


def currency_from_text(text: Optional[str]) -> Optional[str]:
    """ISO code of the first currency marker in a displayed price."""
    if not text:
        return None
    if re.match(r"\s*Rs\.?", text):
        return "INR"
    for char in text:
        if char in CURRENCY_SYMBOLS:
            return CURRENCY_SYMBOLS[char]
    return None


def absolute_url(href: Optional[str], base_url: str, strip_query: bool = False) -> Optional[str]:
    """Resolve ``href`` against ``base_url``; optionally drop query and fragment."""
    if not href:
        return None
    url = urljoin(base_url, href.strip())
    if strip_query:
        url = url.split("?", 1)[0].split("#", 1)[0]
    return url


def _iter_json_ld(soup: BeautifulSoup):
    for node in soup.select('script[type="application/ld+json"]'):
        raw = node.string or node.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug("json_ld_parse_failed", error=str(e))
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if isinstance(item, dict) and "@graph" in item:
                yield from (g for g in item["@graph"] if isinstance(g, dict))
            elif isinstance(item, dict):
                yield item


def _is_product(item: dict) -> bool:
    kind = item.get("@type")
    if isinstance(kind, list):
        return "Product" in kind
    return kind == "Product"


def json_ld_product(soup: BeautifulSoup) -> Optional[dict]:
    """First schema.org Product object embedded as JSON-LD, if any."""
    for item in _iter_json_ld(soup):
        if _is_product(item):
            return item
    return None


def ld_value(data: Optional[dict], *path: str) -> Any:
    """Walk nested JSON-LD keys; lists resolve to their first element."""
    current: Any = data
    for key in path:
        if isinstance(current, list):
            current = current[0] if current else None
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def sku_from_url(
    url: str,
    patterns: Iterable[str],
    fallback_hash: bool = False,
) -> Optional[str]:
    """Derive a SKU from a product URL.

    Args:
        url: Product page URL
        patterns: Regexes whose first capture group is the SKU, tried in order
        fallback_hash: Use the MD5 of the URL when no pattern matches

    Returns:
        SKU string, or None when nothing matches and no fallback is allowed
    """
    for pattern in patterns:
        match = re.search(pattern, url)
        if match:
            return match.group(1)
    if fallback_hash:
        return hashlib.md5(url.encode("utf-8")).hexdigest()
    return None
