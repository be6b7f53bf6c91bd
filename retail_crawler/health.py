"""
Retailer health state machine.

All status changes go through RetailerHealthService. Each change reads the
retailer row under a row lock (select_for_update inside transaction.atomic),
checks the transition table on RetailerStatus, writes, and then sends
retailer_status_changed once the transaction has committed.

Usage:
    from retail_crawler.health import get_health_service

    health = get_health_service()

    # Operator actions
    result = health.pause(retailer, minutes=60, reason="site maintenance")

    # Crawl outcomes
    health.record_failure(retailer)
    health.record_success(retailer, duration_ms=840)
"""

import logging
import time
from datetime import timedelta
from typing import Callable, List, Optional

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from retail_crawler.exceptions import InvalidTransitionError, TransitionResult
from retail_crawler.models import Retailer, RetailerStatus
from retail_crawler.monitoring import capture_alert
from retail_crawler.signals import retailer_status_changed

logger = logging.getLogger(__name__)

# Rolling window for cached health metrics (24 hours)
HEALTH_WINDOW_SECONDS = 86400

# Automatic escalation only ever moves forward along this order
_ESCALATION_RANK = {
    RetailerStatus.ACTIVE: 0,
    RetailerStatus.DEGRADED: 1,
    RetailerStatus.FAILED: 2,
}

# Fields copied back onto the caller's instance after a locked write
_STATE_FIELDS = (
    "status",
    "paused_until",
    "consecutive_failures",
    "last_failure_at",
    "last_success_at",
    "updated_at",
)


class RetailerHealthService:
    """
    Governs retailer status transitions and crawl eligibility.

    Thresholds and the default pause duration come from settings unless given
    explicitly, and are read on every call so they can be changed per test.
    """

    def __init__(
        self,
        degraded_threshold: Optional[int] = None,
        failed_threshold: Optional[int] = None,
        default_pause_minutes: Optional[int] = None,
        clock: Callable = timezone.now,
        key_prefix: str = "crawler:health:",
    ):
        self._degraded_threshold = degraded_threshold
        self._failed_threshold = failed_threshold
        self._default_pause_minutes = default_pause_minutes
        self.clock = clock
        self.key_prefix = key_prefix

    @property
    def degraded_threshold(self) -> int:
        if self._degraded_threshold is not None:
            return self._degraded_threshold
        return getattr(settings, "CRAWLER_DEGRADED_THRESHOLD", 5)

    @property
    def failed_threshold(self) -> int:
        if self._failed_threshold is not None:
            return self._failed_threshold
        return getattr(settings, "CRAWLER_FAILED_THRESHOLD", 10)

    @property
    def default_pause_minutes(self) -> int:
        if self._default_pause_minutes is not None:
            return self._default_pause_minutes
        return getattr(settings, "CRAWLER_DEFAULT_PAUSE_MINUTES", 1440)

    # ------------------------------------------------------------------
    # Affordances
    # ------------------------------------------------------------------

    def can_pause(self, retailer: Retailer) -> bool:
        return retailer.status_enum.is_crawlable

    def can_resume(self, retailer: Retailer) -> bool:
        return retailer.status_enum == RetailerStatus.PAUSED

    def can_disable(self, retailer: Retailer) -> bool:
        return retailer.status_enum != RetailerStatus.DISABLED

    def can_enable(self, retailer: Retailer) -> bool:
        return retailer.status_enum == RetailerStatus.DISABLED

    def get_affordances(self, retailer: Retailer) -> dict:
        return {
            "can_pause": self.can_pause(retailer),
            "can_resume": self.can_resume(retailer),
            "can_disable": self.can_disable(retailer),
            "can_enable": self.can_enable(retailer),
        }

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def get_skip_reason(self, retailer: Retailer, registry=None) -> Optional[str]:
        """
        Return why a retailer cannot be crawled, or None if it is eligible.

        A retailer is eligible when its status is crawlable and its scraper
        binding resolves in the registry. A paused retailer stays ineligible
        until the pause-expiry sweep has resumed it.
        """
        status = retailer.status_enum

        if status == RetailerStatus.DISABLED:
            return "disabled"
        if status == RetailerStatus.PAUSED:
            if retailer.paused_until:
                return f"paused until {retailer.paused_until.isoformat()}"
            return "paused"
        if not status.is_crawlable:
            return f"status {status.value}"
        if not retailer.scraper_key:
            return "no scraper bound"

        if registry is None:
            from retail_crawler.scrapers.registry import get_registry
            registry = get_registry()

        if not registry.is_resolvable(retailer.scraper_key):
            return f"scraper '{retailer.scraper_key}' cannot be resolved"
        return None

    def is_eligible(self, retailer: Retailer, registry=None) -> bool:
        return self.get_skip_reason(retailer, registry=registry) is None

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def pause(
        self,
        retailer: Retailer,
        minutes: Optional[int] = None,
        reason: Optional[str] = None,
        triggered_by: str = "operator",
    ) -> TransitionResult:
        """Pause a crawlable retailer for ``minutes`` (default from settings)."""
        if minutes is None:
            minutes = self.default_pause_minutes

        def guard(locked):
            return locked.status_enum.is_crawlable

        def apply(locked, now):
            locked.paused_until = now + timedelta(minutes=minutes)

        return self._transition(
            retailer,
            RetailerStatus.PAUSED,
            guard,
            apply,
            reason=reason,
            triggered_by=triggered_by,
            rejected="Only active, degraded or failed retailers can be paused",
        )

    def resume(
        self,
        retailer: Retailer,
        reason: Optional[str] = None,
        triggered_by: str = "operator",
    ) -> TransitionResult:
        """Resume a paused retailer ahead of its pause expiry."""

        def guard(locked):
            return locked.status_enum == RetailerStatus.PAUSED

        def apply(locked, now):
            locked.paused_until = None

        return self._transition(
            retailer,
            RetailerStatus.ACTIVE,
            guard,
            apply,
            reason=reason,
            triggered_by=triggered_by,
            rejected="Only paused retailers can be resumed",
        )

    def disable(
        self,
        retailer: Retailer,
        reason: Optional[str] = None,
        triggered_by: str = "operator",
    ) -> TransitionResult:
        """Disable a retailer indefinitely. The failure counter is kept."""

        def guard(locked):
            return locked.status_enum != RetailerStatus.DISABLED

        def apply(locked, now):
            locked.paused_until = None

        return self._transition(
            retailer,
            RetailerStatus.DISABLED,
            guard,
            apply,
            reason=reason,
            triggered_by=triggered_by,
            rejected="Retailer is already disabled",
        )

    def enable(
        self,
        retailer: Retailer,
        reason: Optional[str] = None,
        triggered_by: str = "operator",
    ) -> TransitionResult:
        """Re-enable a disabled retailer with a clean failure counter."""

        def guard(locked):
            return locked.status_enum == RetailerStatus.DISABLED

        def apply(locked, now):
            locked.paused_until = None
            locked.consecutive_failures = 0

        return self._transition(
            retailer,
            RetailerStatus.ACTIVE,
            guard,
            apply,
            reason=reason,
            triggered_by=triggered_by,
            rejected="Only disabled retailers can be enabled",
        )

    def transition(
        self,
        retailer: Retailer,
        target,
        reason: Optional[str] = None,
        triggered_by: str = "system",
    ) -> Retailer:
        """
        Move a retailer to ``target`` following the transition table.

        Unlike the operator actions, a disallowed move raises
        InvalidTransitionError. Pausing uses the default duration; any
        other target clears the pause expiry.
        """
        target = RetailerStatus(target)

        def apply(locked, now):
            if target == RetailerStatus.PAUSED:
                locked.paused_until = now + timedelta(minutes=self.default_pause_minutes)
            else:
                locked.paused_until = None

        result = self._transition(
            retailer,
            target,
            lambda locked: locked.status_enum.can_transition_to(target),
            apply,
            reason=reason,
            triggered_by=triggered_by,
            rejected="",
        )
        if not result.success:
            raise InvalidTransitionError(result.old_status, target.value)
        return retailer

    # ------------------------------------------------------------------
    # Crawl outcomes
    # ------------------------------------------------------------------

    def record_failure(
        self,
        retailer: Retailer,
        duration_ms: Optional[int] = None,
        error: Optional[str] = None,
    ) -> RetailerStatus:
        """
        Record a failed crawl attempt.

        Increments the consecutive failure counter and escalates
        Active -> Degraded -> Failed when the thresholds are crossed. Paused
        and disabled retailers keep their status.

        Returns:
            The retailer's status after the update
        """
        now = self.clock()

        with transaction.atomic():
            locked = Retailer.objects.select_for_update().get(pk=retailer.pk)
            old_status = locked.status_enum

            locked.consecutive_failures += 1
            locked.last_failure_at = now

            new_status = old_status
            if old_status in _ESCALATION_RANK:
                target = self._status_for_failures(locked.consecutive_failures)
                if _ESCALATION_RANK[target] > _ESCALATION_RANK[old_status]:
                    new_status = target
            locked.status = new_status
            locked.save()

        self._copy_state(locked, retailer)
        self._record_window(retailer.slug, success=False, duration_ms=duration_ms)

        logger.debug(
            f"Recorded failure for retailer {retailer.slug}: "
            f"count={locked.consecutive_failures}, status={new_status.value}"
        )

        if new_status != old_status:
            message = (
                f"Retailer {retailer.slug} moved to {new_status.label} after "
                f"{locked.consecutive_failures} consecutive failures"
            )
            logger.warning(message)
            capture_alert(
                message=message,
                retailer=retailer,
                extra_data={
                    "consecutive_failures": locked.consecutive_failures,
                    "last_error": error,
                },
            )
            self._notify(retailer, old_status, new_status, reason=error, triggered_by="health")

        return new_status

    def record_success(self, retailer: Retailer, duration_ms: Optional[int] = None) -> RetailerStatus:
        """
        Record a successful crawl attempt.

        Resets the consecutive failure counter and returns a degraded or
        failed retailer to Active.
        """
        now = self.clock()

        with transaction.atomic():
            locked = Retailer.objects.select_for_update().get(pk=retailer.pk)
            old_status = locked.status_enum

            locked.consecutive_failures = 0
            locked.last_success_at = now

            new_status = old_status
            if old_status.has_issues:
                new_status = RetailerStatus.ACTIVE
            locked.status = new_status
            locked.save()

        self._copy_state(locked, retailer)
        self._record_window(retailer.slug, success=True, duration_ms=duration_ms)

        if new_status != old_status:
            logger.info(f"Retailer {retailer.slug} recovered to {new_status.label}")
            self._notify(retailer, old_status, new_status, reason="crawl succeeded", triggered_by="health")

        return new_status

    def resume_expired(self, now=None) -> List[Retailer]:
        """
        Resume every paused retailer whose pause has expired.

        Each row is flipped with a conditional update so that a concurrent
        operator action is never overwritten. Finding nothing is normal.

        Returns:
            The retailers that were resumed
        """
        now = now or self.clock()
        resumed = []

        candidates = Retailer.objects.filter(
            status=RetailerStatus.PAUSED,
            paused_until__lte=now,
        )
        for retailer in candidates:
            updated = Retailer.objects.filter(
                pk=retailer.pk,
                status=RetailerStatus.PAUSED,
                paused_until__lte=now,
            ).update(status=RetailerStatus.ACTIVE, paused_until=None, updated_at=now)

            if not updated:
                continue

            retailer.status = RetailerStatus.ACTIVE
            retailer.paused_until = None
            resumed.append(retailer)
            self._notify(
                retailer,
                RetailerStatus.PAUSED,
                RetailerStatus.ACTIVE,
                reason="pause expired",
                triggered_by="scheduler",
            )

        if resumed:
            logger.info(f"Resumed {len(resumed)} retailer(s) with expired pauses")

        return resumed

    # ------------------------------------------------------------------
    # Health metrics window
    # ------------------------------------------------------------------

    def get_health_metrics(self, slug: str) -> dict:
        """
        Health summary for one retailer over the last 24 hours.

        Raises:
            Retailer.DoesNotExist: if the slug is unknown
        """
        retailer = Retailer.objects.get(slug=slug)
        events = self._window_events(slug)

        successes = [e for e in events if e["success"]]
        durations = [e["duration_ms"] for e in events if e.get("duration_ms") is not None]

        return {
            "retailer": retailer.slug,
            "status": retailer.status,
            "status_label": retailer.status_enum.label,
            "status_color": retailer.status_enum.color,
            "consecutive_failures": retailer.consecutive_failures,
            "paused_until": retailer.paused_until.isoformat() if retailer.paused_until else None,
            "last_success_at": retailer.last_success_at.isoformat() if retailer.last_success_at else None,
            "last_failure_at": retailer.last_failure_at.isoformat() if retailer.last_failure_at else None,
            "window_hours": HEALTH_WINDOW_SECONDS // 3600,
            "total_crawls": len(events),
            "successful_crawls": len(successes),
            "failed_crawls": len(events) - len(successes),
            "success_rate": round(len(successes) / len(events) * 100, 1) if events else None,
            "average_duration_ms": round(sum(durations) / len(durations)) if durations else None,
            **self.get_affordances(retailer),
        }

    def reset_health(self, slug: str, triggered_by: str = "operator") -> TransitionResult:
        """
        Clear the failure counter and metrics window for a retailer.

        A degraded or failed retailer goes back to Active; paused and
        disabled retailers keep their status.
        """
        retailer = Retailer.objects.get(slug=slug)
        cache.delete(self._window_key(slug))

        with transaction.atomic():
            locked = Retailer.objects.select_for_update().get(pk=retailer.pk)
            old_status = locked.status_enum
            new_status = RetailerStatus.ACTIVE if old_status.has_issues else old_status
            locked.consecutive_failures = 0
            locked.status = new_status
            locked.save()

        self._copy_state(locked, retailer)
        if new_status != old_status:
            self._notify(retailer, old_status, new_status, reason="health reset", triggered_by=triggered_by)

        return TransitionResult(
            success=True,
            message=f"Health reset for {retailer.name}",
            old_status=old_status.value,
            new_status=new_status.value,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _status_for_failures(self, failures: int) -> RetailerStatus:
        if failures >= self.failed_threshold:
            return RetailerStatus.FAILED
        if failures >= self.degraded_threshold:
            return RetailerStatus.DEGRADED
        return RetailerStatus.ACTIVE

    def _transition(self, retailer, target, guard, apply, reason, triggered_by, rejected) -> TransitionResult:
        now = self.clock()

        with transaction.atomic():
            locked = Retailer.objects.select_for_update().get(pk=retailer.pk)
            old_status = locked.status_enum

            if not guard(locked) or not old_status.can_transition_to(target):
                self._copy_state(locked, retailer)
                return TransitionResult(
                    success=False,
                    message=rejected or f"Cannot move {locked.name} from {old_status.label} to {target.label}",
                    old_status=old_status.value,
                    new_status=old_status.value,
                )

            apply(locked, now)
            locked.status = target
            locked.save()

        self._copy_state(locked, retailer)
        if target != old_status:
            self._notify(retailer, old_status, target, reason=reason, triggered_by=triggered_by)

        return TransitionResult(
            success=True,
            message=f"{retailer.name} is now {target.label}",
            old_status=old_status.value,
            new_status=target.value,
        )

    def _copy_state(self, source: Retailer, target: Retailer) -> None:
        if source is target:
            return
        for field in _STATE_FIELDS:
            setattr(target, field, getattr(source, field))

    def _notify(self, retailer, old_status, new_status, reason=None, triggered_by=None) -> None:
        retailer_status_changed.send(
            sender=Retailer,
            retailer=retailer,
            old_status=RetailerStatus(old_status).value,
            new_status=RetailerStatus(new_status).value,
            reason=reason,
            triggered_by=triggered_by,
        )

    def _window_key(self, slug: str) -> str:
        return f"{self.key_prefix}{slug}"

    def _window_events(self, slug: str) -> list:
        cutoff = time.time() - HEALTH_WINDOW_SECONDS
        return [e for e in cache.get(self._window_key(slug), []) if e["at"] >= cutoff]

    def _record_window(self, slug: str, success: bool, duration_ms: Optional[int]) -> None:
        try:
            events = self._window_events(slug)
            events.append({"at": time.time(), "success": success, "duration_ms": duration_ms})
            cache.set(self._window_key(slug), events, HEALTH_WINDOW_SECONDS)
        except Exception as e:
            logger.warning(f"Failed to update health window for {slug}: {e}")


# Singleton instance
_health_service: Optional[RetailerHealthService] = None


def get_health_service() -> RetailerHealthService:
    """Get the global retailer health service."""
    global _health_service

    if _health_service is None:
        _health_service = RetailerHealthService()

    return _health_service
