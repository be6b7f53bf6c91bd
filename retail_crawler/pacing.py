"""
Per-retailer request pacing.

A worker claims the retailer's pacing slot with an atomic cache.add before
each request; the slot expires after the retailer's rate-limit interval.
Workers crawling different retailers never wait on each other, while two
jobs for the same retailer are spaced at least one interval apart even when
they run on different nodes sharing the cache.
"""

import logging
import math
import time
import uuid
from typing import Callable, Optional

from django.core.cache import cache

logger = logging.getLogger(__name__)


class RetailerPacer:
    """Blocks until a retailer's pacing slot is free, then claims it."""

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: float = 0.25,
        max_wait_seconds: Optional[float] = 120,
        key_prefix: str = "crawler:pace:",
    ):
        self.sleep = sleep
        self.poll_interval = poll_interval
        self.max_wait_seconds = max_wait_seconds
        self.key_prefix = key_prefix

    def _get_key(self, retailer_slug: str) -> str:
        return f"{self.key_prefix}{retailer_slug}"

    def wait(self, retailer_slug: str, interval_ms: int) -> float:
        """
        Wait for the retailer's slot and claim it for ``interval_ms``.

        Returns:
            Seconds spent waiting
        """
        if not interval_ms or interval_ms <= 0:
            return 0.0

        key = self._get_key(retailer_slug)
        # Cache backends take whole-second timeouts; round up so spacing is never shorter
        timeout = max(1, math.ceil(interval_ms / 1000))
        token = uuid.uuid4().hex
        waited = 0.0

        while not cache.add(key, token, timeout):
            if self.max_wait_seconds is not None and waited >= self.max_wait_seconds:
                logger.warning(
                    f"Pacing slot for {retailer_slug} still held after {waited:.1f}s, proceeding"
                )
                break
            self.sleep(self.poll_interval)
            waited += self.poll_interval

        if waited:
            logger.debug(f"Waited {waited:.2f}s for pacing slot of {retailer_slug}")
        return waited
