"""
B&M scraper.
"""

from retail_crawler.extractors.bm import (
    BMListingExtractor,
    BMProductDetailsExtractor,
    BMReviewExtractor,
)
from retail_crawler.scrapers.base import BaseScraper
from retail_crawler.scrapers.registry import register_scraper


@register_scraper("bm")
class BMScraper(BaseScraper):
    retailer_slug = "bm"
    name = "B&M"
    base_url = "https://www.bmstores.co.uk"
    request_delay_ms = 2000
    starting_urls = (
        "https://www.bmstores.co.uk/pets/dog-food",
        "https://www.bmstores.co.uk/pets/dog-treats",
        "https://www.bmstores.co.uk/pets/puppy-food",
        "https://www.bmstores.co.uk/pets",
    )

    listing_extractors = (BMListingExtractor,)
    product_extractors = (BMProductDetailsExtractor,)
    review_extractors = (BMReviewExtractor,)
