"""
Tests for Django Admin functionality.

These tests verify the retailer status actions and the dead-letter actions.
"""

import pytest
from django.contrib.admin.sites import AdminSite
from django.contrib.auth import get_user_model
from django.contrib.messages import get_messages
from django.contrib.messages.storage.fallback import FallbackStorage
from django.contrib.sessions.middleware import SessionMiddleware
from django.test import RequestFactory
from unittest.mock import patch


@pytest.fixture
def admin_user(db):
    """Create an admin user for testing."""
    User = get_user_model()
    return User.objects.create_superuser(
        username="admin",
        email="admin@test.com",
        password="testpass123",
    )


@pytest.fixture
def admin_request(admin_user):
    """Create an admin request with user and messages support attached."""
    request = RequestFactory().get("/admin/")
    request.user = admin_user

    middleware = SessionMiddleware(lambda x: None)
    middleware.process_request(request)
    request.session.save()

    setattr(request, "_messages", FallbackStorage(request))

    return request


@pytest.mark.django_db
class TestRetailerAdmin:
    """Tests for Retailer admin interface."""

    def get_admin(self):
        from retail_crawler.admin import RetailerAdmin
        from retail_crawler.models import Retailer

        return RetailerAdmin(Retailer, AdminSite())

    def test_pause_action_uses_health_service(self, admin_request, retailer, make_retailer):
        """pause_retailers pauses crawlable retailers and reports the rest."""
        from retail_crawler.models import Retailer, RetailerStatus

        make_retailer("off", status=RetailerStatus.DISABLED)

        self.get_admin().pause_retailers(admin_request, Retailer.objects.all())

        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.PAUSED
        assert retailer.paused_until is not None
        assert Retailer.objects.get(slug="off").status == RetailerStatus.DISABLED

        messages = [str(m) for m in get_messages(admin_request)]
        assert "Paused 1 retailer(s)." in messages
        assert any("Only active, degraded or failed retailers can be paused" in m for m in messages)

    def test_enable_action_resets_failures(self, admin_request, make_retailer):
        """enable_retailers re-enables disabled retailers with a clean counter."""
        from retail_crawler.models import Retailer, RetailerStatus

        shop = make_retailer("off", status=RetailerStatus.DISABLED, consecutive_failures=9)

        self.get_admin().enable_retailers(admin_request, Retailer.objects.filter(pk=shop.pk))

        shop.refresh_from_db()
        assert shop.status == RetailerStatus.ACTIVE
        assert shop.consecutive_failures == 0

    def test_slug_is_read_only_after_creation(self, admin_request, retailer):
        """Existing retailers cannot change slug through the admin."""
        admin = self.get_admin()

        assert "slug" in admin.get_readonly_fields(admin_request, retailer)
        assert "slug" not in admin.get_readonly_fields(admin_request, None)

    def test_status_badge(self, retailer):
        """Status badge shows the status label."""
        assert "Active" in self.get_admin().status_badge(retailer)


@pytest.mark.django_db
class TestFailedCrawlJobAdmin:
    """Tests for FailedCrawlJob admin interface."""

    def get_admin(self):
        from retail_crawler.admin import FailedCrawlJobAdmin
        from retail_crawler.models import FailedCrawlJob

        return FailedCrawlJobAdmin(FailedCrawlJob, AdminSite())

    def make_failed(self, retailer, count=2):
        from retail_crawler.dead_letters import record_failed_job
        from retail_crawler.jobs import CrawlJob

        for index in range(count):
            job = CrawlJob(scraper_key="bm", url=f"https://www.bmstores.co.uk/p/{index}")
            record_failed_job(job, RuntimeError("boom"), retailer)

    def test_retry_jobs_action(self, admin_request, retailer):
        """retry_jobs re-enqueues and removes the selected jobs."""
        from retail_crawler.models import FailedCrawlJob

        self.make_failed(retailer)

        with patch("retail_crawler.dead_letters._default_enqueue") as enqueue:
            self.get_admin().retry_jobs(admin_request, FailedCrawlJob.objects.all())

        assert enqueue.call_count == 2
        assert not FailedCrawlJob.objects.exists()
        assert "Re-enqueued 2 job(s)." in [str(m) for m in get_messages(admin_request)]

    def test_delete_jobs_action(self, admin_request, retailer):
        """delete_jobs removes the selected jobs without enqueueing."""
        from retail_crawler.models import FailedCrawlJob

        self.make_failed(retailer)

        with patch("retail_crawler.dead_letters._default_enqueue") as enqueue:
            self.get_admin().delete_jobs(admin_request, FailedCrawlJob.objects.all())

        enqueue.assert_not_called()
        assert not FailedCrawlJob.objects.exists()
