"""
Dead-letter store for failed crawl jobs.

A failed job's payload is kept in FailedCrawlJob until an operator retries
it (re-enqueue on the original queue, then delete the row) or deletes it.
"""

import logging
import traceback
from typing import Callable, List, Optional

from django.db import transaction

from retail_crawler.models import FailedCrawlJob

logger = logging.getLogger(__name__)

CRAWL_TASK_NAME = "retail_crawler.tasks.crawl_url"


def _default_enqueue(payload: dict, queue: str) -> None:
    from retail_crawler.tasks import crawl_url

    crawl_url.apply_async(kwargs={"payload": payload}, queue=queue)


def record_failed_job(job, error: BaseException, retailer=None) -> FailedCrawlJob:
    """Store a failed job with its exception and traceback."""
    formatted = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return FailedCrawlJob.objects.create(
        queue=job.queue,
        task_name=CRAWL_TASK_NAME,
        payload=job.to_payload(),
        exception=f"{type(error).__name__}: {error}\n{formatted}",
        retailer=retailer,
        url=job.url,
    )


def list_failed_jobs(retailer_slug: Optional[str] = None) -> List[FailedCrawlJob]:
    queryset = FailedCrawlJob.objects.select_related("retailer")
    if retailer_slug:
        queryset = queryset.filter(retailer__slug=retailer_slug)
    return list(queryset)


def retry_failed_job(job_id, enqueue: Optional[Callable[[dict, str], None]] = None) -> bool:
    """
    Re-enqueue one dead-lettered job on its original queue and remove it.

    Returns:
        False if no such job exists
    """
    enqueue = enqueue or _default_enqueue

    with transaction.atomic():
        failed = FailedCrawlJob.objects.select_for_update().filter(pk=job_id).first()
        if failed is None:
            return False
        enqueue(failed.payload, failed.queue)
        failed.delete()

    logger.info(f"Retried failed crawl job {job_id} on queue {failed.queue}")
    return True


def delete_failed_job(job_id) -> bool:
    deleted, _ = FailedCrawlJob.objects.filter(pk=job_id).delete()
    return bool(deleted)


def retry_all_failed_jobs(enqueue: Optional[Callable[[dict, str], None]] = None) -> int:
    """
    Retry every dead-lettered job, oldest first.

    Returns:
        Number of jobs re-enqueued
    """
    retried = 0
    job_ids = FailedCrawlJob.objects.order_by("failed_at", "pk").values_list("pk", flat=True)
    for job_id in list(job_ids):
        if retry_failed_job(job_id, enqueue=enqueue):
            retried += 1

    if retried:
        logger.info(f"Retried {retried} failed crawl job(s)")
    return retried
