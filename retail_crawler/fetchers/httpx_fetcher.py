"""
Standard fetch adapter - async httpx.

One request per call with a bounded timeout. Timeouts, connection errors and
non-2xx responses come back as an unsuccessful FetchResponse; a retry is a
new crawl job, never a loop in here.
"""

import logging
import time
from typing import Dict, Optional

import httpx

from django.conf import settings

from .base import FetchResponse

logger = logging.getLogger(__name__)


class HttpxFetcher:
    """
    Standard fetcher using async httpx.

    Usage:
        async with HttpxFetcher() as fetcher:
            response = await fetcher.fetch(url, headers=scraper.get_request_headers())
    """

    adapter_name = "standard"

    # Browser User-Agent; many retailers block crawler user agents
    DEFAULT_USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )

    # No 'br': httpx only decodes brotli when the brotli package is installed
    DEFAULT_HEADERS = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-GB,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
    }

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            timeout: Request timeout in seconds (default from settings)
            user_agent: Custom User-Agent string
            transport: httpx transport override (tests use httpx.MockTransport)
        """
        self.timeout = timeout or getattr(settings, "CRAWLER_REQUEST_TIMEOUT", 30)
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.transport = transport

        self._http_client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self._init_http_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _init_http_client(self):
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={**self.DEFAULT_HEADERS, "User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self.transport,
            )

    async def close(self):
        """Close HTTP client connection."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> FetchResponse:
        """
        Fetch a URL once.

        Args:
            url: URL to fetch
            headers: Extra request headers (retailer defaults)

        Returns:
            FetchResponse; ``success`` is True only for 2xx responses
        """
        if self._http_client is None:
            await self._init_http_client()

        started = time.monotonic()

        def elapsed() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            response = await self._http_client.get(url, headers=headers or {})
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout fetching {url}: {e}")
            return FetchResponse(
                url=url,
                content="",
                status_code=0,
                success=False,
                error=f"Timeout after {self.timeout}s",
                adapter=self.adapter_name,
                duration_ms=elapsed(),
            )
        except httpx.HTTPError as e:
            logger.warning(f"HTTP error fetching {url}: {e}")
            return FetchResponse(
                url=url,
                content="",
                status_code=0,
                success=False,
                error=f"{type(e).__name__}: {e}",
                adapter=self.adapter_name,
                duration_ms=elapsed(),
            )

        is_success = 200 <= response.status_code < 300
        error_msg = None
        if not is_success:
            error_msg = f"HTTP {response.status_code}"
            logger.warning(f"HTTP {response.status_code} for {url}")

        return FetchResponse(
            url=url,
            content=response.text if is_success else "",
            status_code=response.status_code,
            success=is_success,
            headers=dict(response.headers),
            error=error_msg,
            adapter=self.adapter_name,
            duration_ms=elapsed(),
        )
