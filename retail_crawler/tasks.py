"""
Celery tasks for the retail crawler.

- crawl_url: worker task executing one crawl job (queue "crawler")
- dispatch_retailer_crawls: on-demand dispatch of retailer crawls
- scheduled_dispatch_all: daily beat task dispatching every eligible retailer
  once per day, on one node, never overlapping a previous run
- resume_expired_paused_retailers: hourly beat task resuming retailers whose
  pause has expired
"""

import logging
from typing import Any, Dict, List, Optional

from celery import shared_task
from django.conf import settings

from retail_crawler.dispatch import RetailerCrawlDispatcher
from retail_crawler.health import get_health_service
from retail_crawler.jobs import CrawlJob, execute_crawl_job
from retail_crawler.scheduling import run_scheduled, tick_for

logger = logging.getLogger(__name__)

SCHEDULED_DISPATCH_NAME = "dispatch-retailer-crawls-daily"
RESUME_EXPIRED_NAME = "resume-expired-retailers-hourly"


@shared_task(name="retail_crawler.tasks.crawl_url", bind=True)
def crawl_url(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Worker task to execute one crawl job.

    Failures are recorded by the executor and never re-raised, so Celery
    does not retry the task in place.

    Args:
        payload: Serialized CrawlJob

    Returns:
        Dict with the crawl outcome
    """
    job = CrawlJob.from_payload(payload)
    logger.info(f"Crawling {job.url} with scraper {job.scraper_key} (task {self.request.id})")

    outcome = execute_crawl_job(job)
    return outcome.to_dict()


@shared_task(name="retail_crawler.tasks.dispatch_retailer_crawls")
def dispatch_retailer_crawls(
    slugs: Optional[List[str]] = None,
    queue: Optional[str] = None,
    delay_seconds: int = 0,
    sync: bool = False,
    use_advanced_adapter: bool = True,
) -> Dict[str, Any]:
    """
    Dispatch crawl jobs for the given retailers (all retailers when omitted).

    Returns:
        Dispatch report dict
    """
    dispatcher = RetailerCrawlDispatcher(queue=queue)
    report = dispatcher.dispatch(
        slugs=slugs,
        base_delay_seconds=delay_seconds,
        sync=sync,
        use_advanced_adapter=use_advanced_adapter,
    )
    return report.to_dict()


@shared_task(name="retail_crawler.tasks.scheduled_dispatch_all")
def scheduled_dispatch_all() -> Dict[str, Any]:
    """
    Periodic task dispatching every eligible retailer.

    Runs daily at 02:00 via Celery Beat. Retailers are spread out by
    CRAWLER_SCHEDULED_RETAILER_DELAY seconds each.
    """
    delay = getattr(settings, "CRAWLER_SCHEDULED_RETAILER_DELAY", 300)

    def action():
        report = RetailerCrawlDispatcher().dispatch(base_delay_seconds=delay)
        return report.to_dict()

    return run_scheduled(SCHEDULED_DISPATCH_NAME, action, tick=tick_for(cadence="daily"))


@shared_task(name="retail_crawler.tasks.resume_expired_paused_retailers")
def resume_expired_paused_retailers() -> Dict[str, Any]:
    """
    Periodic task resuming retailers whose pause has expired.

    Runs hourly via Celery Beat. Finding nothing to resume is normal.
    """

    def action():
        resumed = get_health_service().resume_expired()
        return {
            "resumed": len(resumed),
            "retailers": [retailer.slug for retailer in resumed],
        }

    return run_scheduled(RESUME_EXPIRED_NAME, action, tick=tick_for(cadence="hourly"))
