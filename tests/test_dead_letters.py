"""
Tests for the failed crawl job store.
"""

import pytest

from retail_crawler.dead_letters import (
    delete_failed_job,
    list_failed_jobs,
    record_failed_job,
    retry_all_failed_jobs,
    retry_failed_job,
)
from retail_crawler.exceptions import FetchError
from retail_crawler.jobs import CrawlJob
from retail_crawler.models import FailedCrawlJob


def fail(job, retailer=None):
    try:
        raise FetchError(job.url, "HTTP 503", 503)
    except FetchError as e:
        return record_failed_job(job, e, retailer)


@pytest.fixture
def enqueued():
    calls = []

    def enqueue(payload, queue):
        calls.append((payload, queue))

    enqueue.calls = calls
    return enqueue


@pytest.mark.django_db
class TestRecordFailedJob:
    """Tests for dead-lettering."""

    def test_stores_payload_and_traceback(self, retailer):
        job = CrawlJob(scraper_key="bm", url="https://www.bmstores.co.uk/pets", retailer_slug="bm")

        failed = fail(job, retailer)

        assert failed.payload == job.to_payload()
        assert failed.task_name == "retail_crawler.tasks.crawl_url"
        assert failed.exception.startswith("FetchError: HTTP 503")
        assert "Traceback" in failed.exception
        assert failed.exception_summary == "FetchError: HTTP 503"
        assert failed.failed_at is not None

    def test_list_filters_by_retailer(self, retailer, make_retailer):
        other = make_retailer("other")
        fail(CrawlJob(scraper_key="bm", url="https://a.example.com/"), retailer)
        fail(CrawlJob(scraper_key="bm", url="https://b.example.com/"), other)

        assert len(list_failed_jobs()) == 2
        assert [f.url for f in list_failed_jobs("other")] == ["https://b.example.com/"]


@pytest.mark.django_db
class TestRetryAndDelete:
    """Tests for operator retry and delete actions."""

    def test_retry_re_enqueues_on_original_queue(self, retailer, enqueued):
        job = CrawlJob(scraper_key="bm", url="https://www.bmstores.co.uk/pets", queue="backfill")
        failed = fail(job, retailer)

        assert retry_failed_job(failed.pk, enqueue=enqueued) is True

        assert enqueued.calls == [(job.to_payload(), "backfill")]
        assert not FailedCrawlJob.objects.exists()

    def test_retry_missing_job(self, db, enqueued):
        assert retry_failed_job(999, enqueue=enqueued) is False
        assert enqueued.calls == []

    def test_retry_keeps_row_when_enqueue_fails(self, retailer):
        failed = fail(CrawlJob(scraper_key="bm", url="https://www.bmstores.co.uk/pets"), retailer)

        def broken(payload, queue):
            raise ConnectionError("broker unavailable")

        with pytest.raises(ConnectionError):
            retry_failed_job(failed.pk, enqueue=broken)

        assert FailedCrawlJob.objects.filter(pk=failed.pk).exists()

    def test_delete_does_not_enqueue(self, retailer, enqueued):
        failed = fail(CrawlJob(scraper_key="bm", url="https://www.bmstores.co.uk/pets"), retailer)

        assert delete_failed_job(failed.pk) is True
        assert delete_failed_job(failed.pk) is False
        assert enqueued.calls == []

    def test_retry_all(self, retailer, enqueued):
        queues = ["crawler", "crawler", "backfill"]
        for index, queue in enumerate(queues):
            fail(CrawlJob(scraper_key="bm", url=f"https://www.bmstores.co.uk/p/{index}", queue=queue), retailer)

        retried = retry_all_failed_jobs(enqueue=enqueued)

        assert retried == 3
        assert FailedCrawlJob.objects.count() == 0
        assert sorted(queue for _, queue in enqueued.calls) == sorted(queues)

    def test_retry_all_with_nothing_to_do(self, db, enqueued):
        assert retry_all_failed_jobs(enqueue=enqueued) == 0
