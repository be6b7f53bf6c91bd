"""
Scraper registry.

Maps the stable string key stored on Retailer.scraper_key to a factory that
builds the scraper. Scraper modules listed in CRAWLER_SCRAPER_MODULES register
themselves on import, which happens in AppConfig.ready().

Usage:
    from retail_crawler.scrapers.registry import register_scraper

    @register_scraper("bm")
    class BMScraper(BaseScraper):
        ...
"""

import logging
from importlib import import_module
from typing import Callable, Dict, List, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from retail_crawler.exceptions import ScraperResolutionError

logger = logging.getLogger(__name__)


class ScraperRegistry:
    """Key -> scraper factory lookup."""

    def __init__(self):
        self._factories: Dict[str, Callable] = {}

    def register(self, key: str, factory: Optional[Callable] = None):
        """
        Register a factory under ``key``. Usable as a decorator when
        ``factory`` is omitted.
        """
        if factory is None:
            def decorator(cls):
                self.register(key, cls)
                return cls
            return decorator

        if key in self._factories and self._factories[key] is not factory:
            logger.warning(f"Replacing scraper registered under '{key}'")
        self._factories[key] = factory
        return factory

    def unregister(self, key: str) -> None:
        self._factories.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._factories)

    def __contains__(self, key) -> bool:
        return key in self._factories

    def create(self, key: Optional[str]):
        """
        Build the scraper registered under ``key``.

        Raises:
            ScraperResolutionError: if the key is unknown or the factory fails
        """
        if not key or key not in self._factories:
            raise ScraperResolutionError(key or "")
        try:
            return self._factories[key]()
        except Exception as e:
            raise ScraperResolutionError(key) from e

    def is_resolvable(self, key: Optional[str]) -> bool:
        try:
            self.create(key)
        except ScraperResolutionError:
            return False
        return True


_registry = ScraperRegistry()


def get_registry() -> ScraperRegistry:
    """Get the global scraper registry."""
    return _registry


def register_scraper(key: str):
    """Class decorator registering a scraper in the global registry."""
    return _registry.register(key)


def load_scraper_modules(modules: Optional[List[str]] = None) -> None:
    """Import the configured scraper modules so they register themselves."""
    for module_path in modules if modules is not None else getattr(settings, "CRAWLER_SCRAPER_MODULES", []):
        try:
            import_module(module_path)
        except ImportError as e:
            raise ImproperlyConfigured(f"Cannot import scraper module '{module_path}': {e}") from e
