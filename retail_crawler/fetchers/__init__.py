"""
Fetch adapters.

- HttpxFetcher: standard async HTTP client
- ScrapingBeeFetcher: anti-bot adapter (proxy rotation, JS rendering)

A crawl job's ``use_advanced_adapter`` flag picks between them.
"""

import logging

from django.conf import settings

from .base import FetchResponse
from .httpx_fetcher import HttpxFetcher
from .scrapingbee_fetcher import ScrapingBeeFetcher

logger = logging.getLogger(__name__)

__all__ = [
    "FetchResponse",
    "HttpxFetcher",
    "ScrapingBeeFetcher",
    "get_fetcher",
]


def get_fetcher(use_advanced_adapter: bool = True):
    """
    Build the fetch adapter for a job.

    The advanced adapter needs SCRAPINGBEE_API_KEY; without it the standard
    adapter is used and a warning is logged.
    """
    if use_advanced_adapter:
        if getattr(settings, "SCRAPINGBEE_API_KEY", ""):
            return ScrapingBeeFetcher()
        logger.warning("Advanced adapter requested but SCRAPINGBEE_API_KEY is not set; using standard adapter")
    return HttpxFetcher()
