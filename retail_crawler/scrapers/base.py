"""
Base scraper.

A scraper describes one retailer: where crawling starts, how politely to
request pages, and which extractors understand its pages. Extractors are
grouped per record kind; for each kind the first extractor whose
``can_handle`` accepts the URL is used.
"""

import logging
from typing import Dict, Iterator, List, Optional, Sequence, Type

from django.conf import settings

from retail_crawler.extractors.base import BaseExtractor

logger = logging.getLogger(__name__)


class BaseScraper:
    """Retailer-specific crawl configuration and extractor chain."""

    retailer_slug: str = ""
    name: str = ""
    base_url: str = ""
    starting_urls: Sequence[str] = ()
    # Pacing for retailers whose row leaves rate_limit_ms empty
    request_delay_ms: Optional[int] = None
    headers: Dict[str, str] = {}

    listing_extractors: Sequence[Type[BaseExtractor]] = ()
    product_extractors: Sequence[Type[BaseExtractor]] = ()
    review_extractors: Sequence[Type[BaseExtractor]] = ()

    def __init__(self):
        self.extractor_chains = {
            "listing": [cls() for cls in self.listing_extractors],
            "product": [cls() for cls in self.product_extractors],
            "review": [cls() for cls in self.review_extractors],
        }

    def __repr__(self):
        return f"<{type(self).__name__} retailer={self.retailer_slug}>"

    def get_starting_urls(self) -> List[str]:
        """Entry points of a crawl. An empty list is valid."""
        return list(self.starting_urls)

    def get_request_headers(self) -> Dict[str, str]:
        headers = dict(getattr(settings, "CRAWLER_DEFAULT_HEADERS", {}))
        headers.update(self.headers)
        return headers

    def extractors_for(self, url: str) -> List[BaseExtractor]:
        """The first extractor of each kind that claims ``url``."""
        selected = []
        for kind, chain in self.extractor_chains.items():
            for extractor in chain:
                if extractor.can_handle(url):
                    selected.append(extractor)
                    break
        return selected

    def extract(self, html: str, url: str) -> Iterator:
        """Run every claiming extractor over the page, listings first, then products, then reviews."""
        extractors = self.extractors_for(url)
        if not extractors:
            logger.info(f"{self!r}: no extractor claims {url}")
            return
        for extractor in extractors:
            yield from extractor.extract(html, url)
