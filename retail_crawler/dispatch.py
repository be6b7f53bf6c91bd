"""
Retailer crawl dispatcher.

Turns retailers into crawl jobs: one job per starting URL of each eligible
retailer, with a delay that grows per retailer and per URL so a retailer's
URLs are never all requested in the same instant.

    delay = base_delay_seconds * retailer_index + url_index * stagger_seconds

Ineligible retailers are skipped with a reason instead of failing the run.
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Callable, Iterable, List, Optional

from django.conf import settings
from django.utils import timezone

from retail_crawler.exceptions import ScraperResolutionError
from retail_crawler.health import get_health_service
from retail_crawler.jobs import CrawlJob, CrawlOutcome, execute_crawl_job
from retail_crawler.models import Retailer
from retail_crawler.scrapers.registry import get_registry

logger = logging.getLogger(__name__)


@dataclass
class SkippedRetailer:
    slug: str
    reason: str


@dataclass
class DispatchReport:
    """What one dispatch run did, for operators."""

    crawl_id: str
    jobs_dispatched: int = 0
    retailers_dispatched: List[str] = field(default_factory=list)
    skipped: List[SkippedRetailer] = field(default_factory=list)
    outcomes: List[CrawlOutcome] = field(default_factory=list)

    @property
    def retailers_skipped(self) -> int:
        return len(self.skipped)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["retailers_skipped"] = self.retailers_skipped
        return data


def _default_enqueue(job: CrawlJob) -> None:
    from retail_crawler.tasks import crawl_url

    crawl_url.apply_async(
        kwargs={"payload": job.to_payload()},
        queue=job.queue,
        countdown=job.delay_seconds or None,
    )


class RetailerCrawlDispatcher:
    """Emits crawl jobs for eligible retailers."""

    def __init__(
        self,
        registry=None,
        health=None,
        queue: Optional[str] = None,
        stagger_seconds: Optional[int] = None,
        enqueue: Optional[Callable[[CrawlJob], None]] = None,
        executor: Optional[Callable[[CrawlJob], CrawlOutcome]] = None,
    ):
        self.registry = registry or get_registry()
        self.health = health or get_health_service()
        self.queue = queue or getattr(settings, "CRAWLER_DISPATCH_QUEUE", "crawler")
        self.stagger_seconds = (
            stagger_seconds if stagger_seconds is not None
            else getattr(settings, "CRAWLER_STAGGER_SECONDS", 5)
        )
        self.enqueue = enqueue or _default_enqueue
        self.executor = executor or execute_crawl_job

    def dispatch(
        self,
        slugs: Optional[Iterable[str]] = None,
        base_delay_seconds: int = 0,
        sync: bool = False,
        use_advanced_adapter: bool = True,
        crawl_id: Optional[str] = None,
    ) -> DispatchReport:
        """
        Dispatch crawl jobs.

        Args:
            slugs: Retailers to dispatch; all retailers when None
            base_delay_seconds: Delay added per dispatched retailer
            sync: Execute jobs inline instead of enqueueing them
            use_advanced_adapter: Fetch through the anti-bot adapter
            crawl_id: Correlation id for this run (generated when omitted)
        """
        report = DispatchReport(crawl_id=crawl_id or uuid.uuid4().hex)

        retailers = Retailer.objects.order_by("name", "pk")
        if slugs is not None:
            slugs = list(dict.fromkeys(slugs))
            retailers = retailers.filter(slug__in=slugs)
            found = set(retailers.values_list("slug", flat=True))
            for slug in slugs:
                if slug not in found:
                    report.skipped.append(SkippedRetailer(slug=slug, reason="not found"))

        retailer_index = 0
        for retailer in retailers:
            reason = self.health.get_skip_reason(retailer, registry=self.registry)
            if reason:
                logger.info(f"Skipping retailer {retailer.slug}: {reason}")
                report.skipped.append(SkippedRetailer(slug=retailer.slug, reason=reason))
                continue

            try:
                dispatched = self._dispatch_retailer(
                    retailer,
                    retailer_index,
                    base_delay_seconds,
                    sync,
                    use_advanced_adapter,
                    report,
                )
            except ScraperResolutionError as e:
                logger.error(f"Skipping retailer {retailer.slug}: {e}")
                report.skipped.append(SkippedRetailer(slug=retailer.slug, reason=str(e)))
                continue
            except Exception as e:
                logger.exception(f"Failed to dispatch retailer {retailer.slug}: {e}")
                report.skipped.append(SkippedRetailer(slug=retailer.slug, reason=f"dispatch error: {e}"))
                continue

            retailer.last_crawled_at = timezone.now()
            retailer.save(update_fields=["last_crawled_at", "updated_at"])

            report.jobs_dispatched += dispatched
            report.retailers_dispatched.append(retailer.slug)
            retailer_index += 1

        logger.info(
            f"Dispatch {report.crawl_id}: {report.jobs_dispatched} job(s) for "
            f"{len(report.retailers_dispatched)} retailer(s), {report.retailers_skipped} skipped"
        )
        return report

    def _dispatch_retailer(
        self,
        retailer: Retailer,
        retailer_index: int,
        base_delay_seconds: int,
        sync: bool,
        use_advanced_adapter: bool,
        report: DispatchReport,
    ) -> int:
        scraper = self.registry.create(retailer.scraper_key)
        urls = scraper.get_starting_urls()

        if not urls:
            logger.info(f"Retailer {retailer.slug} has no starting URLs")

        jobs = [
            CrawlJob(
                scraper_key=retailer.scraper_key,
                url=url,
                retailer_slug=retailer.slug,
                crawl_id=report.crawl_id,
                use_advanced_adapter=use_advanced_adapter,
                queue=self.queue,
                delay_seconds=base_delay_seconds * retailer_index + index * self.stagger_seconds,
            )
            for index, url in enumerate(urls)
        ]

        for job in jobs:
            if sync:
                report.outcomes.append(self.executor(job))
            else:
                self.enqueue(job)

        logger.info(f"Dispatched {len(jobs)} job(s) for {retailer.slug} to queue {self.queue}")
        return len(jobs)
