"""BigBasket extraction adapter."""

from catalog_sync.scrapers.adapters.structured_data import StructuredDataAdapter
from catalog_sync.scrapers.schemas import FetchMode, PaginationConfig, PaginationType, PlatformConfig


class BigBasketAdapter(StructuredDataAdapter):
    platform = "bigbasket"
    base_url = "https://www.bigbasket.com"

    product_link_selectors = ('h3 a[href*="/pd/"]', 'a[href*="/pd/"]')
    product_path_marker = "/pd/"

    sku_patterns = (r"/pd/(\d+)",)

    title_selectors = ("h1.prod-name", ".product-title h1", ".prod-details h1", "h1")
    description_list_selector = ".description .desc-text"
    description_selectors = (".prod-details p", 'meta[name="description"]')
    brand_selectors = (".brand-name", ".prod-details .brand", ".product-brand")
    sale_price_selectors = (".price .discnt-price", ".prod-price .price-amt", ".final-price")
    price_selectors = (".price .mrp-price", ".original-price", ".strikethrough-price")
    offers_selectors = (".offer-text", ".discount-label")
    availability_selectors = (".stock-status", ".availability-text", ".out-of-stock")
    rating_selectors = (".rating .avg-rating", ".product-rating .stars", ".rating-stars")
    review_count_selectors = (".review-count", ".rating .reviews", ".total-reviews")
    image_selector = ".product-img img, .main-image img, .gallery-thumbs img, .additional-images img"
    spec_row_selector = ".spec-table tr, .product-details-table tr"
    breadcrumb_selector = ".breadcrumb a, .category-path a"

    @classmethod
    def default_config(cls) -> PlatformConfig:
        return PlatformConfig(
            platform_name=cls.platform,
            fetch_mode=FetchMode.HTTP,
            pagination=PaginationConfig(
                type=PaginationType.REGULAR,
                max_pages=50,
                page_param="page",
                consecutive_error_limit=50,
                delay_range=(2.0, 5.0),
            ),
        )
