"""
Anti-bot fetch adapter - ScrapingBee API.

Used for retailers that block plain HTTP clients. Provides premium proxy
rotation and JavaScript rendering.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

from django.conf import settings
from scrapingbee import ScrapingBeeClient

from .base import FetchResponse

logger = logging.getLogger(__name__)


class ScrapingBeeFetcher:
    """
    Advanced fetcher using the ScrapingBee API.

    The ScrapingBee client is synchronous, so requests run in the default
    executor.
    """

    adapter_name = "advanced"

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
        render_js: bool = True,
        premium_proxy: bool = True,
        client=None,
    ):
        """
        Args:
            api_key: ScrapingBee API key (defaults to settings)
            timeout: Request timeout in seconds
            render_js: Whether to render JavaScript
            premium_proxy: Whether to use premium proxies
            client: Pre-built client (tests)
        """
        self.api_key = api_key or getattr(settings, "SCRAPINGBEE_API_KEY", "")
        self.timeout = timeout or getattr(settings, "CRAWLER_REQUEST_TIMEOUT", 30)
        self.render_js = render_js
        self.premium_proxy = premium_proxy

        self._client = client

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        pass

    def _init_client(self):
        if not self.api_key:
            raise ValueError(
                "ScrapingBee API key not configured. "
                "Set SCRAPINGBEE_API_KEY in settings."
            )
        self._client = ScrapingBeeClient(api_key=self.api_key)
        logger.info("ScrapingBee client initialized")

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> FetchResponse:
        """
        Fetch a URL once through ScrapingBee.

        Returns:
            FetchResponse; ``success`` is True only for 2xx responses
        """
        started = time.monotonic()

        def elapsed() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            if self._client is None:
                self._init_client()

            params = {
                "render_js": self.render_js,
                "premium_proxy": self.premium_proxy,
                "country_code": "gb",
                "timeout": self.timeout * 1000,  # ScrapingBee uses milliseconds
            }

            loop = asyncio.get_running_loop()
            response = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    lambda: self._client.get(url, params=params, headers=headers or None),
                ),
                timeout=self.timeout + 5,
            )
        except asyncio.TimeoutError:
            logger.warning(f"ScrapingBee timeout for {url}")
            return FetchResponse(
                url=url,
                content="",
                status_code=0,
                success=False,
                error=f"Timeout after {self.timeout}s",
                adapter=self.adapter_name,
                duration_ms=elapsed(),
            )
        except Exception as e:
            logger.error(f"ScrapingBee error for {url}: {e}")
            return FetchResponse(
                url=url,
                content="",
                status_code=0,
                success=False,
                error=str(e),
                adapter=self.adapter_name,
                duration_ms=elapsed(),
            )

        is_success = 200 <= response.status_code < 300
        if not is_success:
            logger.warning(f"ScrapingBee returned {response.status_code} for {url}")

        return FetchResponse(
            url=url,
            content=response.text if is_success else "",
            status_code=response.status_code,
            success=is_success,
            headers=dict(response.headers),
            error=None if is_success else f"ScrapingBee HTTP {response.status_code}",
            adapter=self.adapter_name,
            duration_ms=elapsed(),
        )
