"""
Pytest configuration and fixtures for the Retail Crawler test suite.
"""

import pytest


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Configure the test database and run migrations."""
    from django.core.management import call_command

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


@pytest.fixture(autouse=True)
def clear_cache():
    """Locks, pacing slots and health windows live in the cache; start each test clean."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def operator(db):
    """Create a staff user for the operator API."""
    from django.contrib.auth import get_user_model

    return get_user_model().objects.create_user(
        username="operator",
        password="operator-pass",
        is_staff=True,
    )


@pytest.fixture
def authenticated_client(api_client, operator):
    """API client logged in as the operator."""
    api_client.force_authenticate(user=operator)
    return api_client


@pytest.fixture
def retailer(db):
    """Create an active retailer bound to the B&M scraper, with no pacing."""
    from retail_crawler.models import Retailer

    return Retailer.objects.create(
        name="B&M",
        slug="bm",
        base_url="https://www.bmstores.co.uk",
        scraper_key="bm",
        rate_limit_ms=0,
    )


@pytest.fixture
def make_retailer(db):
    """Factory for additional retailers."""
    from retail_crawler.models import Retailer

    def factory(slug, name=None, scraper_key="bm", **kwargs):
        kwargs.setdefault("rate_limit_ms", 0)
        return Retailer.objects.create(
            name=name or slug.replace("-", " ").title(),
            slug=slug,
            base_url=f"https://{slug}.example.com",
            scraper_key=scraper_key,
            **kwargs,
        )

    return factory


@pytest.fixture
def scraper_registry():
    """An isolated registry holding only a stub scraper with two starting URLs."""
    from retail_crawler.scrapers.base import BaseScraper
    from retail_crawler.scrapers.registry import ScraperRegistry

    class StubScraper(BaseScraper):
        retailer_slug = ""
        name = "Stub"
        starting_urls = (
            "https://stub.example.com/category/a",
            "https://stub.example.com/category/b",
        )

    class EmptyScraper(BaseScraper):
        retailer_slug = ""
        name = "Empty"
        starting_urls = ()

    registry = ScraperRegistry()
    registry.register("stub", StubScraper)
    registry.register("empty", EmptyScraper)
    return registry


@pytest.fixture
def mock_fetcher_factory():
    """Build fetcher factories whose HTTP traffic is answered by ``handler``."""
    import httpx

    from retail_crawler.fetchers import HttpxFetcher

    def build(handler):
        def factory(use_advanced_adapter=True):
            return HttpxFetcher(transport=httpx.MockTransport(handler))

        return factory

    return build
