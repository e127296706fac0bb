"""Generic HTML adapter driven by selector tables.

Every product field is read JSON-LD first, then from the configured HTML
selectors, then from meta tags. Platform adapters subclass it and only
fill in class attributes (plus the odd override).
"""

from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from catalog_sync.scrapers.base import ExtractionAdapter, ProductRecord
from catalog_sync.scrapers.utils.extraction import (
    absolute_url,
    all_texts,
    currency_from_text,
    first_of,
    image_sources,
    json_ld_product,
    ld_value,
    make_soup,
    parse_count,
    parse_price,
    parse_rating,
    select_text,
    sku_from_url,
    table_pairs,
    variant_options,
)
from catalog_sync.scrapers.utils.normalizer import clean_text

_AVAILABILITY = {
    "instock": "In Stock",
    "outofstock": "Out of Stock",
    "preorder": "Pre-order",
    "limitedavailability": "Limited Stock",
    "soldout": "Out of Stock",
}


def _availability_label(value: Optional[str]) -> Optional[str]:
    """schema.org availability URL -> human label."""
    if not value:
        return None
    key = str(value).rstrip("/").rsplit("/", 1)[-1].lower()
    return _AVAILABILITY.get(key, clean_text(str(value)))


def _as_list(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    urls = []
    for item in value:
        if isinstance(item, str):
            urls.append(item)
        elif isinstance(item, dict) and item.get("url"):
            urls.append(item["url"])
    return urls


class StructuredDataAdapter(ExtractionAdapter):
    """Selector-table adapter with JSON-LD-first field extraction."""

    base_url: str = ""

    # Listing pages
    product_link_selectors: Sequence[str] = ()
    product_path_marker: Optional[str] = None  # Links must contain this to count as product pages
    strip_link_query: bool = False
    next_page_selector: Optional[str] = None
    cursor_selector: Optional[str] = None
    cursor_attribute: str = "href"

    # Identity
    sku_patterns: Sequence[str] = ()
    sku_fallback_hash: bool = False
    prefer_json_ld_sku: bool = False

    # Product pages
    title_selectors: Sequence[str] = ("h1", 'meta[property="og:title"]')
    description_selectors: Sequence[str] = ('meta[name="description"]',)
    description_list_selector: Optional[str] = None
    brand_selectors: Sequence[str] = ()
    price_selectors: Sequence[str] = ()  # Regular / list price (MRP)
    sale_price_selectors: Sequence[str] = ()
    offers_selectors: Sequence[str] = ()
    availability_selectors: Sequence[str] = ()
    rating_selectors: Sequence[str] = ()
    review_count_selectors: Sequence[str] = ()
    image_selector: Optional[str] = None
    video_selector: Optional[str] = None
    spec_row_selector: Optional[str] = None
    breadcrumb_selector: Optional[str] = None
    variant_selectors: Sequence[Tuple[str, str]] = ()  # (variant type, selector)
    default_currency: Optional[str] = "INR"
    default_inventory_status: Optional[str] = None

    # ---- listing ----------------------------------------------------------

    def list_product_urls(self, content: str, category_url: str) -> List[str]:
        soup = make_soup(content)
        base = self.base_url or category_url
        urls = []
        for selector in self.product_link_selectors:
            for node in soup.select(selector):
                url = absolute_url(node.get("href"), base, strip_query=self.strip_link_query)
                if not url:
                    continue
                if self.product_path_marker and self.product_path_marker not in url:
                    continue
                urls.append(url)

        urls = list(dict.fromkeys(urls))[: self.config.max_products_per_page]
        self.logger.info("product_urls_extracted", count=len(urls), category_url=category_url)
        return urls

    def has_next_page(self, content: str, page_url: str) -> bool:
        if not self.next_page_selector:
            return super().has_next_page(content, page_url)
        return make_soup(content).select_one(self.next_page_selector) is not None

    def next_cursor(self, content: str, page_url: str) -> Optional[str]:
        if not self.cursor_selector:
            return None
        node = make_soup(content).select_one(self.cursor_selector)
        if node is None:
            return None
        token = node.get(self.cursor_attribute)
        if not token:
            return None
        if token.startswith("/"):
            return absolute_url(token, self.base_url or page_url)
        return token

    # ---- product ----------------------------------------------------------

    def derive_sku(self, soup: BeautifulSoup, ld: Optional[dict], product_url: str) -> Optional[str]:
        sources = [
            lambda: sku_from_url(product_url, self.sku_patterns),
            lambda: clean_text(str(ld_value(ld, "sku") or ld_value(ld, "productID") or "")),
        ]
        if self.prefer_json_ld_sku:
            sources.reverse()
        sku = first_of(*sources)
        if sku is None and self.sku_fallback_hash:
            sku = sku_from_url(product_url, (), fallback_hash=True)
        return sku

    def parse_review_count(self, text: Optional[str]) -> Optional[int]:
        return parse_count(text)

    def _prices(self, soup: BeautifulSoup, ld: Optional[dict]) -> Tuple:
        sale_price = first_of(
            lambda: parse_price(ld_value(ld, "offers", "price")),
            lambda: parse_price(ld_value(ld, "offers", "lowPrice")),
            lambda: parse_price(select_text(soup, self.sale_price_selectors)),
        )
        price = first_of(
            lambda: parse_price(ld_value(ld, "offers", "listPrice")),
            lambda: parse_price(ld_value(ld, "offers", "priceSpecification", "price")),
            lambda: parse_price(select_text(soup, self.price_selectors)),
        )
        # No separate MRP on the page: the selling price is the regular price
        return price or sale_price, sale_price

    def _brand(self, soup: BeautifulSoup, ld: Optional[dict]) -> Optional[str]:
        brand = ld_value(ld, "brand")
        if isinstance(brand, dict):
            brand = brand.get("name")
        return first_of(
            lambda: clean_text(brand) if isinstance(brand, str) else None,
            lambda: select_text(soup, self.brand_selectors),
        )

    def _description(self, soup: BeautifulSoup, ld: Optional[dict]) -> Optional[str]:
        listed = None
        if self.description_list_selector:
            listed = "; ".join(all_texts(soup, self.description_list_selector))
        return first_of(
            lambda: clean_text(ld_value(ld, "description")),
            listed,
            lambda: select_text(soup, self.description_selectors),
        )

    def _category_path(self, soup: BeautifulSoup, ld: Optional[dict]) -> Optional[str]:
        crumbs = None
        if self.breadcrumb_selector:
            crumbs = " > ".join(all_texts(soup, self.breadcrumb_selector))
        return first_of(lambda: clean_text(ld_value(ld, "category")), crumbs)

    def _videos(self, soup: BeautifulSoup) -> List[str]:
        if not self.video_selector:
            return []
        urls = []
        for node in soup.select(self.video_selector):
            src = node.get("src") or node.get("data-src")
            if src and src.startswith("http"):
                urls.append(src)
        return urls

    def _variants(self, soup: BeautifulSoup) -> List[Dict[str, str]]:
        variants: List[Dict[str, str]] = []
        for kind, selector in self.variant_selectors:
            for option in variant_options(soup, selector, kind):
                if option not in variants:
                    variants.append(option)
        return variants

    def _currency(self, soup: BeautifulSoup, ld: Optional[dict]) -> Optional[str]:
        return first_of(
            lambda: clean_text(ld_value(ld, "offers", "priceCurrency")),
            lambda: currency_from_text(select_text(soup, self.sale_price_selectors)),
            lambda: currency_from_text(select_text(soup, self.price_selectors)),
            self.default_currency,
        )

    def extract_product(self, content: str, product_url: str) -> Optional[ProductRecord]:
        soup = make_soup(content)
        ld = json_ld_product(soup)

        sku = self.derive_sku(soup, ld, product_url)
        if not sku:
            self.logger.warning("sku_not_derivable", url=product_url)
            return None

        price, sale_price = self._prices(soup, ld)
        record = ProductRecord(
            platform=self.platform,
            sku=sku,
            product_url=product_url,
            title=first_of(
                lambda: clean_text(ld_value(ld, "name")),
                lambda: select_text(soup, self.title_selectors),
            ),
            description=self._description(soup, ld),
            brand=self._brand(soup, ld),
            price=price,
            sale_price=sale_price,
            currency=self._currency(soup, ld),
            offers=first_of(lambda: select_text(soup, self.offers_selectors)),
            inventory_status=first_of(
                lambda: _availability_label(ld_value(ld, "offers", "availability")),
                lambda: select_text(soup, self.availability_selectors),
                self.default_inventory_status,
            ),
            rating=first_of(
                lambda: parse_rating(ld_value(ld, "aggregateRating", "ratingValue")),
                lambda: parse_rating(select_text(soup, self.rating_selectors)),
            ),
            review_count=first_of(
                lambda: parse_count(ld_value(ld, "aggregateRating", "reviewCount")),
                lambda: self.parse_review_count(select_text(soup, self.review_count_selectors)),
            ),
            images=first_of(
                lambda: _as_list(ld_value(ld, "image") if ld else None),
                lambda: image_sources(soup, self.image_selector) if self.image_selector else None,
            ) or [],
            videos=self._videos(soup),
            variants=self._variants(soup),
            specifications=(table_pairs(soup, self.spec_row_selector) if self.spec_row_selector else {}),
            category_path=self._category_path(soup, ld),
            metadata={"json_ld": ld is not None},
        )
        self.logger.debug("product_extracted", sku=record.sku, title=record.title)
        return record
