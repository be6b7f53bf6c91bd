"""
Tests for the retailer health state machine.

Tests cover:
1. Eligibility and skip reasons
2. Operator actions (pause/resume/disable/enable) and their guards
3. Failure escalation Active -> Degraded -> Failed and recovery on success
4. Pause-expiry sweep
5. Status-changed notifications
6. Health metrics window and reset
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from retail_crawler.exceptions import InvalidTransitionError
from retail_crawler.health import RetailerHealthService
from retail_crawler.models import Retailer, RetailerStatus
from retail_crawler.signals import retailer_status_changed


@pytest.fixture
def health():
    return RetailerHealthService(degraded_threshold=3, failed_threshold=5, default_pause_minutes=60)


@pytest.fixture
def status_events():
    """Collect retailer_status_changed notifications."""
    events = []

    def receiver(sender, **kwargs):
        events.append(kwargs)

    retailer_status_changed.connect(receiver)
    yield events
    retailer_status_changed.disconnect(receiver)


@pytest.mark.django_db
class TestEligibility:
    """Tests for get_skip_reason / is_eligible."""

    def test_active_retailer_with_registered_scraper_is_eligible(self, health, retailer):
        assert health.get_skip_reason(retailer) is None
        assert health.is_eligible(retailer) is True

    def test_degraded_and_failed_retailers_stay_eligible(self, health, retailer):
        for status in (RetailerStatus.DEGRADED, RetailerStatus.FAILED):
            retailer.status = status
            assert health.is_eligible(retailer) is True

    def test_paused_retailer_is_skipped_with_expiry(self, health, retailer):
        health.pause(retailer, minutes=30)

        reason = health.get_skip_reason(retailer)
        assert reason.startswith("paused until ")

    def test_paused_retailer_with_past_expiry_is_skipped_until_swept(self, health, retailer):
        retailer.status = RetailerStatus.PAUSED
        retailer.paused_until = timezone.now() - timedelta(minutes=1)
        retailer.save()

        assert health.is_eligible(retailer) is False

    def test_disabled_retailer_is_skipped(self, health, retailer):
        health.disable(retailer)

        assert health.get_skip_reason(retailer) == "disabled"

    def test_unbound_scraper_is_skipped(self, health, make_retailer):
        retailer = make_retailer("no-scraper", scraper_key=None)

        assert health.get_skip_reason(retailer) == "no scraper bound"

    def test_unknown_scraper_is_skipped(self, health, make_retailer):
        retailer = make_retailer("mystery", scraper_key="does-not-exist")

        assert health.get_skip_reason(retailer) == "scraper 'does-not-exist' cannot be resolved"

    def test_custom_registry_is_used(self, health, make_retailer, scraper_registry):
        retailer = make_retailer("stubbed", scraper_key="stub")

        assert health.is_eligible(retailer, registry=scraper_registry) is True
        assert health.is_eligible(retailer) is False


@pytest.mark.django_db
class TestOperatorActions:
    """Tests for pause/resume/disable/enable."""

    def test_pause_sets_expiry(self, health, retailer):
        before = timezone.now()

        result = health.pause(retailer, minutes=90, reason="maintenance")

        assert result.success is True
        assert result.old_status == "active"
        assert result.new_status == "paused"
        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.PAUSED
        assert retailer.paused_until >= before + timedelta(minutes=90)

    def test_pause_uses_default_duration(self, health, retailer):
        before = timezone.now()

        health.pause(retailer)

        assert retailer.paused_until >= before + timedelta(minutes=60)
        assert retailer.paused_until <= timezone.now() + timedelta(minutes=60)

    def test_pause_updates_callers_instance(self, health, retailer):
        health.pause(retailer, minutes=5)

        assert retailer.status == RetailerStatus.PAUSED
        assert retailer.paused_until is not None

    def test_cannot_pause_disabled_retailer(self, health, retailer):
        health.disable(retailer)

        result = health.pause(retailer, minutes=5)

        assert result.success is False
        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.DISABLED
        assert retailer.paused_until is None

    def test_resume_clears_expiry(self, health, retailer):
        health.pause(retailer, minutes=30)

        result = health.resume(retailer)

        assert result.success is True
        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.ACTIVE
        assert retailer.paused_until is None

    def test_resume_rejects_non_paused(self, health, retailer):
        result = health.resume(retailer)

        assert result.success is False
        assert result.new_status == "active"

    def test_disable_clears_pause_expiry(self, health, retailer):
        health.pause(retailer, minutes=30)

        result = health.disable(retailer)

        assert result.success is True
        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.DISABLED
        assert retailer.paused_until is None

    def test_disable_twice_is_rejected(self, health, retailer):
        health.disable(retailer)

        assert health.disable(retailer).success is False

    def test_enable_resets_failure_counter(self, health, retailer):
        for _ in range(4):
            health.record_failure(retailer)
        health.disable(retailer)

        result = health.enable(retailer)

        assert result.success is True
        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.ACTIVE
        assert retailer.consecutive_failures == 0

    def test_enable_rejects_non_disabled(self, health, retailer):
        assert health.enable(retailer).success is False

    def test_affordances_follow_status(self, health, retailer):
        assert health.get_affordances(retailer) == {
            "can_pause": True,
            "can_resume": False,
            "can_disable": True,
            "can_enable": False,
        }

        health.pause(retailer, minutes=5)

        assert health.get_affordances(retailer) == {
            "can_pause": False,
            "can_resume": True,
            "can_disable": True,
            "can_enable": False,
        }

    def test_strict_transition_raises_on_invalid_move(self, health, retailer):
        health.disable(retailer)

        with pytest.raises(InvalidTransitionError):
            health.transition(retailer, RetailerStatus.FAILED)

    def test_strict_transition_to_paused_sets_expiry(self, health, retailer):
        health.transition(retailer, "paused")

        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.PAUSED
        assert retailer.paused_until is not None


@pytest.mark.django_db
class TestFailureEscalation:
    """Tests for record_failure / record_success."""

    def test_failures_below_threshold_stay_active(self, health, retailer):
        for _ in range(2):
            health.record_failure(retailer)

        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.ACTIVE
        assert retailer.consecutive_failures == 2
        assert retailer.last_failure_at is not None

    def test_degraded_at_threshold(self, health, retailer):
        statuses = [health.record_failure(retailer) for _ in range(3)]

        assert statuses[-1] == RetailerStatus.DEGRADED

    def test_failed_at_higher_threshold(self, health, retailer):
        for _ in range(5):
            health.record_failure(retailer)

        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.FAILED
        assert retailer.consecutive_failures == 5

    def test_escalation_never_steps_back(self, health, retailer):
        retailer.status = RetailerStatus.FAILED
        retailer.save()

        assert health.record_failure(retailer) == RetailerStatus.FAILED

    def test_paused_retailer_keeps_status_on_failure(self, health, retailer):
        health.pause(retailer, minutes=10)

        for _ in range(6):
            health.record_failure(retailer)

        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.PAUSED
        assert retailer.consecutive_failures == 6

    def test_success_resets_counter_and_recovers(self, health, retailer):
        for _ in range(5):
            health.record_failure(retailer)

        status = health.record_success(retailer, duration_ms=250)

        assert status == RetailerStatus.ACTIVE
        retailer.refresh_from_db()
        assert retailer.consecutive_failures == 0
        assert retailer.last_success_at is not None

    def test_success_does_not_resume_paused_retailer(self, health, retailer):
        health.pause(retailer, minutes=10)

        assert health.record_success(retailer) == RetailerStatus.PAUSED

    def test_escalation_raises_alert(self, health, retailer):
        with patch("retail_crawler.health.capture_alert") as capture_alert:
            for _ in range(3):
                health.record_failure(retailer, error="HTTP 503")

        capture_alert.assert_called_once()
        assert capture_alert.call_args.kwargs["extra_data"]["last_error"] == "HTTP 503"

    def test_stale_instance_does_not_double_count(self, health, retailer):
        stale = Retailer.objects.get(pk=retailer.pk)

        health.record_failure(retailer)
        health.record_failure(stale)

        retailer.refresh_from_db()
        assert retailer.consecutive_failures == 2


@pytest.mark.django_db
class TestResumeExpired:
    """Tests for the pause-expiry sweep."""

    def test_resumes_only_expired_pauses(self, health, make_retailer):
        expired = make_retailer("expired")
        pending = make_retailer("pending")
        now = timezone.now()
        Retailer.objects.filter(pk=expired.pk).update(
            status=RetailerStatus.PAUSED, paused_until=now - timedelta(minutes=1)
        )
        Retailer.objects.filter(pk=pending.pk).update(
            status=RetailerStatus.PAUSED, paused_until=now + timedelta(hours=1)
        )

        resumed = health.resume_expired(now=now)

        assert [r.slug for r in resumed] == ["expired"]
        expired.refresh_from_db()
        pending.refresh_from_db()
        assert expired.status == RetailerStatus.ACTIVE
        assert expired.paused_until is None
        assert pending.status == RetailerStatus.PAUSED

    def test_nothing_to_resume_is_normal(self, health, retailer):
        assert health.resume_expired() == []

    def test_sweep_is_idempotent(self, health, retailer):
        Retailer.objects.filter(pk=retailer.pk).update(
            status=RetailerStatus.PAUSED, paused_until=timezone.now() - timedelta(minutes=1)
        )

        assert len(health.resume_expired()) == 1
        assert health.resume_expired() == []

    def test_expired_disabled_retailer_is_untouched(self, health, retailer):
        Retailer.objects.filter(pk=retailer.pk).update(status=RetailerStatus.DISABLED)

        assert health.resume_expired() == []
        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.DISABLED


@pytest.mark.django_db
class TestStatusNotifications:
    """Tests for retailer_status_changed."""

    def test_operator_action_notifies(self, health, retailer, status_events):
        health.pause(retailer, minutes=5, reason="maintenance", triggered_by="tester")

        assert len(status_events) == 1
        event = status_events[0]
        assert event["old_status"] == "active"
        assert event["new_status"] == "paused"
        assert event["reason"] == "maintenance"
        assert event["triggered_by"] == "tester"

    def test_rejected_action_does_not_notify(self, health, retailer, status_events):
        health.resume(retailer)

        assert status_events == []

    def test_escalation_notifies_once(self, health, retailer, status_events):
        for _ in range(4):
            health.record_failure(retailer)

        assert [(e["old_status"], e["new_status"]) for e in status_events] == [("active", "degraded")]
        assert status_events[0]["triggered_by"] == "health"

    def test_sweep_notifies(self, health, retailer, status_events):
        Retailer.objects.filter(pk=retailer.pk).update(
            status=RetailerStatus.PAUSED, paused_until=timezone.now() - timedelta(minutes=1)
        )

        health.resume_expired()

        assert status_events[0]["triggered_by"] == "scheduler"


@pytest.mark.django_db
class TestHealthMetrics:
    """Tests for the cached health window."""

    def test_metrics_summarise_recent_outcomes(self, health, retailer):
        health.record_success(retailer, duration_ms=100)
        health.record_success(retailer, duration_ms=300)
        health.record_failure(retailer, duration_ms=200)

        metrics = health.get_health_metrics("bm")

        assert metrics["total_crawls"] == 3
        assert metrics["successful_crawls"] == 2
        assert metrics["failed_crawls"] == 1
        assert metrics["success_rate"] == 66.7
        assert metrics["average_duration_ms"] == 200
        assert metrics["consecutive_failures"] == 1
        assert metrics["can_pause"] is True

    def test_metrics_without_history(self, health, retailer):
        metrics = health.get_health_metrics("bm")

        assert metrics["total_crawls"] == 0
        assert metrics["success_rate"] is None

    def test_unknown_slug_raises(self, health, db):
        with pytest.raises(Retailer.DoesNotExist):
            health.get_health_metrics("nope")

    def test_reset_health_recovers_failed_retailer(self, health, retailer):
        for _ in range(5):
            health.record_failure(retailer)

        result = health.reset_health("bm")

        assert result.success is True
        assert result.new_status == "active"
        retailer.refresh_from_db()
        assert retailer.consecutive_failures == 0
        assert health.get_health_metrics("bm")["total_crawls"] == 0

    def test_reset_health_keeps_disabled_status(self, health, retailer):
        health.disable(retailer)

        result = health.reset_health("bm")

        assert result.new_status == "disabled"
