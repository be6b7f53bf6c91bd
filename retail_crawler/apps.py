"""
Retail crawler application configuration.
"""

from django.apps import AppConfig


class RetailCrawlerConfig(AppConfig):
    """Configuration for the retail crawler Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "retail_crawler"
    verbose_name = "Retail Crawler"

    def ready(self):
        """
        Perform application initialization.

        - Import signal handlers to register them
        - Load the configured scraper modules so their scrapers register
          into the scraper registry
        """
        from retail_crawler import signals  # noqa: F401
        from retail_crawler.scrapers.registry import load_scraper_modules

        load_scraper_modules()
