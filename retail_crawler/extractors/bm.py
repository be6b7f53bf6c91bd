"""
B&M (bmstores.co.uk) extractors.
"""

import re
from typing import Optional
from urllib.parse import urlparse

from retail_crawler.extractors.base import (
    ListingExtractor,
    ProductDetailsExtractor,
    ReviewExtractor,
)
from retail_crawler.extractors.parsing import external_id_from_url

BM_HOSTS = ("bmstores.co.uk", "www.bmstores.co.uk")

PRODUCT_PATH_PATTERN = re.compile(r"/product/|/p/\d+|/pd/[a-z0-9-]+", re.IGNORECASE)

EXTERNAL_ID_PATTERNS = (
    re.compile(r"/product/[^/]*?-(\d+)(?:/|$|\?)", re.IGNORECASE),
    re.compile(r"/p/(\d+)", re.IGNORECASE),
    re.compile(r"/pd/([a-z0-9-]+)", re.IGNORECASE),
    re.compile(r"(?:product[_-]?id)=([a-z0-9-]+)", re.IGNORECASE),
)


def is_bm_url(url: str) -> bool:
    return (urlparse(url).hostname or "").lower() in BM_HOSTS


def is_bm_product_url(url: str) -> bool:
    return is_bm_url(url) and PRODUCT_PATH_PATTERN.search(urlparse(url).path) is not None


class BMListingExtractor(ListingExtractor):
    retailer_slug = "bm"

    def can_handle(self, url: str) -> bool:
        return is_bm_url(url)

    def is_product_url(self, url: str) -> bool:
        return is_bm_product_url(url)


class BMProductDetailsExtractor(ProductDetailsExtractor):
    retailer_slug = "bm"

    title_selectors = (
        "h1.product-title",
        "h1[data-product-title]",
        ".product-name h1",
        ".pdp-title h1",
        "[data-testid=\"product-title\"]",
        ".product-details h1",
        "h1",
    )
    price_selectors = (
        ".product-price",
        "[data-price]",
        ".price-current",
        ".pdp-price",
        ".price .current",
        "[data-testid=\"product-price\"]",
        ".product-details .price",
        ".price",
    )
    original_price_selectors = (
        ".was-price",
        ".price-was",
        ".original-price",
        ".price-rrp",
        "[data-original-price]",
        ".price .was",
        ".strikethrough-price",
        "s.price",
        "del.price",
    )
    description_selectors = (
        ".product-description",
        "[data-description]",
        ".description-content",
        ".pdp-description",
        "[data-testid=\"product-description\"]",
        ".product-details .description",
        "#product-description",
        ".product-info-description",
    )
    brand_selectors = (
        ".product-brand",
        "[data-brand]",
        ".brand-name",
        "[data-testid=\"product-brand\"]",
        ".pdp-brand",
    )
    image_selectors = (
        ".product-image img",
        ".gallery img",
        "[data-product-image]",
        ".pdp-image img",
        ".product-gallery img",
        "[data-testid=\"product-image\"] img",
        ".product-media img",
        ".carousel img",
    )
    weight_selectors = (".product-weight", "[data-weight]", ".weight", ".size")
    id_selectors = ("[data-product-id]", "[data-sku]", "[data-item-id]", "input[name=\"product_id\"]")
    out_of_stock_selectors = (
        ".out-of-stock",
        "[data-stock-status=\"out\"]",
        ".sold-out",
        ".unavailable",
        "[data-testid=\"out-of-stock\"]",
    )
    in_stock_selectors = (
        ".in-stock",
        "[data-stock-status=\"in\"]",
        "[data-stock-status=\"available\"]",
        "[data-testid=\"in-stock\"]",
    )
    add_to_cart_selectors = (".add-to-basket", "button[data-add-to-cart]")
    known_brands = (
        "Pedigree",
        "Whiskas",
        "Felix",
        "Iams",
        "Royal Canin",
        "Purina",
        "Harringtons",
        "Bakers",
        "Wainwright",
        "Burns",
        "James Wellbeloved",
        "Lily's Kitchen",
        "Forthglade",
        "Butcher's",
        "Cesar",
        "Webbox",
        "Good Boy",
        "Dreamies",
        "Wagg",
        "Naturo",
        "AVA",
        "Applaws",
        "Canagan",
    )

    def can_handle(self, url: str) -> bool:
        return is_bm_product_url(url)

    def external_id_for_url(self, url: str) -> Optional[str]:
        for pattern in EXTERNAL_ID_PATTERNS:
            match = pattern.search(url)
            if match:
                return match.group(1)
        return external_id_from_url(url)


class BMReviewExtractor(ReviewExtractor):
    retailer_slug = "bm"

    review_selectors = (
        ".review-item",
        ".customer-review",
        "[data-review]",
        ".reviews-list .review",
        ".product-review",
        "[itemtype*=\"Review\"]",
    )
    body_selectors = (
        ".review-body",
        ".review-text",
        ".review-content",
        "[itemprop=\"reviewBody\"]",
        "p",
    )
    author_selectors = (".review-author", ".author-name", "[itemprop=\"author\"]", ".reviewer-name")
    title_selectors = (".review-title", ".review-headline", "[itemprop=\"name\"]", "h3", "h4")
    rating_selectors = ("[data-rating]", "[data-score]", "[data-stars]", ".review-rating", ".rating")
    date_selectors = ("[itemprop=\"datePublished\"]", ".review-date", ".date", "time")
    verified_selectors = (".verified-purchase", ".verified-buyer", "[data-verified=\"true\"]", ".badge-verified")
    helpful_selectors = (".helpful-count", ".vote-count", "[data-helpful-count]", ".upvotes")
    filled_star_selector = ".star-filled, .star-full, .icon-star-filled"

    def can_handle(self, url: str) -> bool:
        return is_bm_product_url(url)
