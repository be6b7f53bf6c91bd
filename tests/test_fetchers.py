"""
Tests for the fetch adapters.

Uses httpx.MockTransport for the standard adapter and a fake ScrapingBee
client for the advanced one; no network access.
"""

from types import SimpleNamespace

import httpx
import pytest
from django.test import override_settings

from retail_crawler.fetchers import HttpxFetcher, ScrapingBeeFetcher, get_fetcher


def mock_fetcher(handler):
    return HttpxFetcher(transport=httpx.MockTransport(handler))


class TestHttpxFetcher:
    """Tests for the standard adapter."""

    @pytest.mark.asyncio
    async def test_success(self):
        def handler(request):
            return httpx.Response(200, text="<html>ok</html>", headers={"Content-Type": "text/html"})

        async with mock_fetcher(handler) as fetcher:
            response = await fetcher.fetch("https://www.bmstores.co.uk/pets")

        assert response.success is True
        assert response.status_code == 200
        assert response.content == "<html>ok</html>"
        assert response.adapter == "standard"
        assert response.error is None
        assert response.duration_ms is not None

    @pytest.mark.asyncio
    async def test_non_2xx_is_a_failure(self):
        def handler(request):
            return httpx.Response(404, text="Not found")

        async with mock_fetcher(handler) as fetcher:
            response = await fetcher.fetch("https://www.bmstores.co.uk/missing")

        assert response.success is False
        assert response.status_code == 404
        assert response.content == ""
        assert response.error == "HTTP 404"

    @pytest.mark.asyncio
    async def test_timeout_is_a_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with HttpxFetcher(timeout=3, transport=httpx.MockTransport(handler)) as fetcher:
            response = await fetcher.fetch("https://www.bmstores.co.uk/slow")

        assert response.success is False
        assert response.status_code == 0
        assert response.error == "Timeout after 3s"

    @pytest.mark.asyncio
    async def test_connection_error_is_a_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_fetcher(handler) as fetcher:
            response = await fetcher.fetch("https://www.bmstores.co.uk/pets")

        assert response.success is False
        assert response.error.startswith("ConnectError")

    @pytest.mark.asyncio
    async def test_request_headers_are_sent(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, text="")

        async with mock_fetcher(handler) as fetcher:
            await fetcher.fetch("https://www.bmstores.co.uk/pets", headers={"Referer": "https://www.bmstores.co.uk/"})

        assert seen["referer"] == "https://www.bmstores.co.uk/"
        assert "Chrome" in seen["user-agent"]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        fetcher = mock_fetcher(lambda request: httpx.Response(200))
        await fetcher.close()
        async with fetcher:
            pass
        await fetcher.close()


class FakeScrapingBeeClient:
    def __init__(self, status_code=200, text="<html>bee</html>", error=None):
        self.status_code = status_code
        self.text = text
        self.error = error
        self.calls = []

    def get(self, url, params=None, headers=None):
        self.calls.append((url, params, headers))
        if self.error:
            raise self.error
        return SimpleNamespace(status_code=self.status_code, text=self.text, headers={})


class TestScrapingBeeFetcher:
    """Tests for the advanced adapter."""

    @pytest.mark.asyncio
    async def test_success(self):
        client = FakeScrapingBeeClient()

        async with ScrapingBeeFetcher(api_key="key", timeout=10, client=client) as fetcher:
            response = await fetcher.fetch("https://www.bmstores.co.uk/pets")

        assert response.success is True
        assert response.content == "<html>bee</html>"
        assert response.adapter == "advanced"
        url, params, _ = client.calls[0]
        assert url == "https://www.bmstores.co.uk/pets"
        assert params["timeout"] == 10000
        assert params["country_code"] == "gb"

    @pytest.mark.asyncio
    async def test_non_2xx_is_a_failure(self):
        client = FakeScrapingBeeClient(status_code=500, text="error")

        async with ScrapingBeeFetcher(api_key="key", client=client) as fetcher:
            response = await fetcher.fetch("https://www.bmstores.co.uk/pets")

        assert response.success is False
        assert response.error == "ScrapingBee HTTP 500"

    @pytest.mark.asyncio
    async def test_client_error_is_a_failure(self):
        client = FakeScrapingBeeClient(error=RuntimeError("quota exceeded"))

        async with ScrapingBeeFetcher(api_key="key", client=client) as fetcher:
            response = await fetcher.fetch("https://www.bmstores.co.uk/pets")

        assert response.success is False
        assert response.error == "quota exceeded"

    @pytest.mark.asyncio
    async def test_missing_api_key_is_a_failure(self):
        async with ScrapingBeeFetcher() as fetcher:
            response = await fetcher.fetch("https://www.bmstores.co.uk/pets")

        assert response.success is False
        assert "API key" in response.error


class TestGetFetcher:
    """Tests for adapter selection."""

    @override_settings(SCRAPINGBEE_API_KEY="key")
    def test_advanced_adapter(self):
        assert isinstance(get_fetcher(True), ScrapingBeeFetcher)

    @override_settings(SCRAPINGBEE_API_KEY="")
    def test_advanced_without_key_falls_back_to_standard(self):
        assert isinstance(get_fetcher(True), HttpxFetcher)

    @override_settings(SCRAPINGBEE_API_KEY="key")
    def test_standard_adapter(self):
        assert isinstance(get_fetcher(False), HttpxFetcher)
