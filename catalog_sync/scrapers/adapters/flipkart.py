"""Flipkart extraction adapter.

Flipkart renders category and product pages server side, so the direct
HTTP strategy is enough. It blocks aggressively, hence the long delays
between pages and the low consecutive-error limit.
"""

import re
from typing import Optional

from catalog_sync.scrapers.adapters.structured_data import StructuredDataAdapter
from catalog_sync.scrapers.schemas import FetchMode, PaginationConfig, PaginationType, PlatformConfig
from catalog_sync.scrapers.utils.extraction import parse_count


class FlipkartAdapter(StructuredDataAdapter):
    platform = "flipkart"
    base_url = "https://www.flipkart.com"

    product_link_selectors = ('a[href*="/p/"]', "a.VJA3rP", "a.wjcEIp")
    product_path_marker = "/p/"
    strip_link_query = True
    next_page_selector = 'nav a:-soup-contains("Next")'

    # Product id lives in the path (/p/itm...) or in the pid query parameter
    sku_patterns = (r"/p/([a-zA-Z0-9]+)", r"pid=([A-Z0-9]+)")

    title_selectors = (".B_NuCI", "._35KyD6", ".x2Jnpn", "h1 span", ".yhZ1nd")
    description_list_selector = "._1mXcCf li, ._3k-BhJ li"
    description_selectors = (".Xbd0Sd ._4gvKMe p", 'meta[name="description"]')
    sale_price_selectors = (".Nx9bqj.CxhGGd",)
    price_selectors = (".hl05eU .yRaY8j",)
    offers_selectors = (".hl05eU .UkUFwK.WW8yVX",)
    availability_selectors = ("._16FRp0", "._3xgqrA")
    rating_selectors = (".XQDdHH",)
    review_count_selectors = (".Wphh3N span",)
    image_selector = "ul.ZqtVYK li img._0DkuPH"
    video_selector = "video source, video, iframe[src*='youtube.com'], iframe[src*='player.vimeo.com']"
    spec_row_selector = "._1s_Smc tr, ._21lJbe tr, table._0ZhAN9 tr"
    breadcrumb_selector = "div._7dPnhA > div.r2CdBx > a.R0cyWM"
    variant_selectors = (
        ("color", "._1KOMV6 li, ._3V2wfe li"),
        ("configuration", "._21Ahn- li, ._1fGeJ5 li"),
    )
    default_inventory_status = "In Stock"

    @classmethod
    def default_config(cls) -> PlatformConfig:
        return PlatformConfig(
            platform_name=cls.platform,
            fetch_mode=FetchMode.HTTP,
            pagination=PaginationConfig(
                type=PaginationType.REGULAR,
                max_pages=100,
                page_param="page",
                consecutive_error_limit=2,
                delay_range=(5.0, 12.0),
            ),
        )

    def parse_review_count(self, text: Optional[str]) -> Optional[int]:
        # "1,278 Ratings & 123 Reviews"
        if text:
            match = re.search(r"([\d,]+)\s+Ratings.*?([\d,]+)\s+Reviews", text)
            if match:
                return int(match.group(2).replace(",", ""))
        return parse_count(text)
