"""Blinkit extraction adapter.

Blinkit is a client-rendered storefront: listings only exist after the
JavaScript ran and more products appear on scroll. Product cards carry
no links, so product URLs are rebuilt from the card id and name.
"""

from typing import List

from catalog_sync.scrapers.adapters.structured_data import StructuredDataAdapter
from catalog_sync.scrapers.schemas import FetchMode, PaginationConfig, PaginationType, PlatformConfig
from catalog_sync.scrapers.utils.extraction import make_soup
from catalog_sync.scrapers.utils.normalizer import clean_text, slugify


class BlinkitAdapter(StructuredDataAdapter):
    platform = "blinkit"
    base_url = "https://blinkit.com"

    card_selector = 'div[tabindex="0"][role="button"][id]'
    card_name_selector = "div.tw-text-300.tw-font-semibold.tw-line-clamp-2"
    cursor_selector = 'link[rel="next"]'

    sku_patterns = (r"prid/(\d+)",)
    sku_fallback_hash = True
    prefer_json_ld_sku = True

    title_selectors = ("h1", "div.tw-text-400.tw-font-bold")
    description_selectors = ('div[data-pf="product-description"]', 'meta[name="description"]')
    brand_selectors = ('span[data-test-id="pdp-brand"]',)
    sale_price_selectors = ('span[data-test-id="pdp-price"]', "div.tw-text-200.tw-font-semibold")
    price_selectors = ('span[data-test-id="pdp-mrp"]', "div.tw-text-200.tw-font-regular.tw-line-through")
    offers_selectors = ('span[data-test-id="pdp-offer"]', "div.tw-bg-green-050")
    rating_selectors = ('div[data-test-id="pdp-rating"]',)
    review_count_selectors = ('span[data-test-id="pdp-review-count"]',)
    image_selector = "div.tw-overflow-hidden img"
    spec_row_selector = "table tr"
    breadcrumb_selector = 'nav[data-test-id="breadcrumb"] a'

    @classmethod
    def default_config(cls) -> PlatformConfig:
        return PlatformConfig(
            platform_name=cls.platform,
            fetch_mode=FetchMode.RENDERED,
            pagination=PaginationConfig(
                type=PaginationType.CURSOR,
                max_pages=100,
                consecutive_error_limit=50,
                delay_range=(2.0, 5.0),
            ),
            render_wait_selector=cls.card_selector,
            render_scroll_steps=3,
        )

    def list_product_urls(self, content: str, category_url: str) -> List[str]:
        soup = make_soup(content)
        urls = []
        for card in soup.select(self.card_selector):
            name_node = card.select_one(self.card_name_selector)
            name = clean_text(name_node.get_text(" ")) if name_node else None
            if name:
                urls.append(f"{self.base_url}/prn/{slugify(name)}/prid/{card['id']}")

        urls = list(dict.fromkeys(urls))[: self.config.max_products_per_page]
        self.logger.info("product_urls_extracted", count=len(urls), category_url=category_url)
        return urls
