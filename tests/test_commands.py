"""
Tests for the operator management commands.
"""

from datetime import timedelta
from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from retail_crawler.dead_letters import record_failed_job
from retail_crawler.jobs import CrawlJob, CrawlOutcome
from retail_crawler.models import FailedCrawlJob, RetailerStatus


def run(*args):
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


@pytest.mark.django_db
class TestDispatchRetailerCrawlsCommand:
    """Tests for dispatch_retailer_crawls."""

    def test_dispatch_all(self, retailer, make_retailer):
        make_retailer("off", status=RetailerStatus.DISABLED)

        with patch("retail_crawler.dispatch._default_enqueue") as enqueue:
            output = run("dispatch_retailer_crawls", "--delay=30")

        assert enqueue.call_count == 4
        assert "Skipped off: disabled" in output
        assert "Dispatched 4 job(s) for 1 retailer(s), 1 skipped" in output

    def test_dispatch_one_retailer_on_queue(self, retailer, make_retailer):
        make_retailer("other")

        with patch("retail_crawler.dispatch._default_enqueue") as enqueue:
            run("dispatch_retailer_crawls", "--retailer=bm", "--queue=backfill", "--standard-adapter")

        jobs = [call.args[0] for call in enqueue.call_args_list]
        assert {job.retailer_slug for job in jobs} == {"bm"}
        assert {job.queue for job in jobs} == {"backfill"}
        assert all(job.use_advanced_adapter is False for job in jobs)

    def test_unknown_retailer_is_reported(self, db):
        output = run("dispatch_retailer_crawls", "--retailer=ghost")

        assert "Skipped ghost: not found" in output
        assert "Dispatched 0 job(s) for 0 retailer(s), 1 skipped" in output

    def test_sync_executes_inline(self, retailer):
        with patch("retail_crawler.dispatch.execute_crawl_job") as execute:
            execute.side_effect = lambda job: CrawlOutcome(url=job.url, status="succeeded", retailer_slug=job.retailer_slug)
            output = run("dispatch_retailer_crawls", "--retailer=bm", "--sync")

        assert execute.call_count == 4
        assert "Executed 4 job(s) for 1 retailer(s)" in output

    def test_negative_delay_is_rejected(self, db):
        with pytest.raises(CommandError):
            run("dispatch_retailer_crawls", "--delay=-1")


@pytest.mark.django_db
class TestRetailerStatusCommand:
    """Tests for retailer_status."""

    def test_show_status(self, retailer):
        output = run("retailer_status", "bm", "status")

        assert "B&M (bm)" in output
        assert "Status: Active" in output
        assert "Eligible: yes" in output
        assert "Available actions: pause, disable" in output

    def test_pause_and_resume(self, retailer):
        output = run("retailer_status", "bm", "pause", "--minutes=120", "--reason=maintenance")

        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.PAUSED
        assert retailer.paused_until > timezone.now() + timedelta(minutes=119)
        assert "Paused until" in output

        run("retailer_status", "bm", "resume")

        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.ACTIVE

    def test_disable_and_enable(self, retailer):
        retailer.consecutive_failures = 7
        retailer.save()

        run("retailer_status", "bm", "disable")
        run("retailer_status", "bm", "enable")

        retailer.refresh_from_db()
        assert retailer.status == RetailerStatus.ACTIVE
        assert retailer.consecutive_failures == 0

    def test_invalid_transition_is_an_error(self, retailer):
        with pytest.raises(CommandError, match="Only paused retailers can be resumed"):
            run("retailer_status", "bm", "resume")

    def test_unknown_retailer(self, db):
        with pytest.raises(CommandError, match="not found"):
            run("retailer_status", "ghost", "status")

    def test_invalid_minutes(self, retailer):
        with pytest.raises(CommandError):
            run("retailer_status", "bm", "pause", "--minutes=0")


@pytest.mark.django_db
class TestResumeExpiredRetailersCommand:
    """Tests for resume_expired_retailers."""

    def test_nothing_to_resume(self, retailer):
        assert "No expired pauses" in run("resume_expired_retailers")

    def test_resumes_expired(self, make_retailer):
        make_retailer("resting", status=RetailerStatus.PAUSED, paused_until=timezone.now() - timedelta(seconds=1))

        output = run("resume_expired_retailers")

        assert "Resumed resting" in output
        assert "Resumed 1 retailer(s)" in output


@pytest.mark.django_db
class TestFailedCrawlJobsCommand:
    """Tests for failed_crawl_jobs."""

    def make_failed(self, retailer, url="https://www.bmstores.co.uk/pets"):
        return record_failed_job(CrawlJob(scraper_key="bm", url=url), RuntimeError("boom"), retailer)

    def test_list_empty(self, db):
        assert "No failed crawl jobs" in run("failed_crawl_jobs", "list")

    def test_list(self, retailer):
        self.make_failed(retailer)

        output = run("failed_crawl_jobs", "list")

        assert "RuntimeError: boom" in output
        assert "1 failed job(s)" in output

    def test_retry(self, retailer):
        failed = self.make_failed(retailer)

        with patch("retail_crawler.dead_letters._default_enqueue") as enqueue:
            output = run("failed_crawl_jobs", "retry", str(failed.pk))

        enqueue.assert_called_once_with(failed.payload, "crawler")
        assert f"Re-enqueued job {failed.pk}" in output
        assert not FailedCrawlJob.objects.exists()

    def test_delete(self, retailer):
        failed = self.make_failed(retailer)

        output = run("failed_crawl_jobs", "delete", str(failed.pk))

        assert f"Deleted job {failed.pk}" in output
        assert not FailedCrawlJob.objects.exists()

    def test_retry_all(self, retailer):
        self.make_failed(retailer, "https://www.bmstores.co.uk/p/1")
        self.make_failed(retailer, "https://www.bmstores.co.uk/p/2")

        with patch("retail_crawler.dead_letters._default_enqueue") as enqueue:
            output = run("failed_crawl_jobs", "retry-all")

        assert enqueue.call_count == 2
        assert "Re-enqueued 2 job(s)" in output

    def test_retry_needs_job_id(self, db):
        with pytest.raises(CommandError, match="needs a job id"):
            run("failed_crawl_jobs", "retry")

    def test_missing_job(self, db):
        with pytest.raises(CommandError, match="not found"):
            run("failed_crawl_jobs", "delete", "999")
