"""
Scheduling guards for periodic crawl triggers.

Two guards wrap every scheduled action:

- ScheduleLock: no-overlap. Held for the whole run and released on
  completion; it expires on its own after CRAWLER_SCHEDULE_LOCK_MINUTES so a
  crashed run cannot block later ones.
- claim_tick: single owner per cadence tick. The first node to claim
  (name, tick) runs the action, every other node sees the claim and returns.

Both use cache.add, which is atomic on the shared Redis cache.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

logger = logging.getLogger(__name__)

OVERLAP_KEY = "crawler:schedule:overlap:{name}"
TICK_KEY = "crawler:schedule:tick:{name}:{tick}"


def _lock_seconds() -> int:
    return int(getattr(settings, "CRAWLER_SCHEDULE_LOCK_MINUTES", 180)) * 60


class ScheduleLock:
    """Time-bounded no-overlap lock for a named scheduled action."""

    def __init__(self, name: str, timeout_seconds: Optional[int] = None):
        self.name = name
        self.key = OVERLAP_KEY.format(name=name)
        self.timeout_seconds = timeout_seconds or _lock_seconds()
        self.token = uuid.uuid4().hex
        self.acquired = False

    def acquire(self) -> bool:
        self.acquired = cache.add(self.key, self.token, timeout=self.timeout_seconds)
        return self.acquired

    def release(self) -> None:
        # Only the holder may release; an expired-and-retaken lock belongs to someone else
        if self.acquired and cache.get(self.key) == self.token:
            cache.delete(self.key)
        self.acquired = False

    def is_held(self) -> bool:
        return cache.get(self.key) is not None

    def __enter__(self) -> "ScheduleLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


def tick_for(when: Optional[datetime] = None, cadence: str = "daily") -> str:
    """Identity of the cadence period containing `when` (local time)."""
    when = timezone.localtime(when or timezone.now())
    if cadence == "hourly":
        return when.strftime("%Y-%m-%dT%H")
    return when.strftime("%Y-%m-%d")


def claim_tick(name: str, tick: str, timeout_seconds: Optional[int] = None) -> bool:
    """Claim one cadence tick for this node. False if another node already has it."""
    key = TICK_KEY.format(name=name, tick=tick)
    # Must outlive the tick so a late duplicate trigger still sees it
    return cache.add(key, timezone.now().isoformat(), timeout=timeout_seconds or 2 * 24 * 60 * 60)


def run_scheduled(
    name: str,
    action: Callable[[], Dict[str, Any]],
    tick: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Run `action` under the single-owner and no-overlap guards.

    Returns the action's result, or a dict with status "skipped" and the
    reason when a guard refused the run.
    """
    if tick is not None and not claim_tick(name, tick):
        logger.info(f"Scheduled run {name} for tick {tick} already claimed by another node")
        return {"status": "skipped", "reason": "tick already claimed", "tick": tick}

    lock = ScheduleLock(name)
    if not lock.acquire():
        logger.warning(f"Scheduled run {name} skipped: previous run still in progress")
        return {"status": "skipped", "reason": "previous run still in progress", "tick": tick}

    try:
        result = action()
    finally:
        lock.release()

    logger.info(f"Scheduled run {name} completed")
    return {"status": "completed", "tick": tick, "result": result}
