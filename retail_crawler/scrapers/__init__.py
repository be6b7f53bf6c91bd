"""
Scrapers bind a retailer to its starting URLs and extractor chain.
"""

from .base import BaseScraper
from .registry import ScraperRegistry, get_registry, register_scraper

__all__ = [
    "BaseScraper",
    "ScraperRegistry",
    "get_registry",
    "register_scraper",
]
