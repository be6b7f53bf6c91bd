"""
Crawl job execution.

A CrawlJob is a message, never a database row: scraper key, URL, adapter
choice, queue, delay and an optional crawl-run id. Executing it:

1. resolve the scraper (a configuration error skips the job)
2. check the retailer is still eligible
3. wait for the retailer's pacing slot and fetch the page
4. run the page through the scraper's extractor chain
5. hand each record to ingestion, queueing a product crawl for every
   newly discovered listing
6. report success or failure to retailer health and statistics

Any exception in steps 3-5 fails this job only: it is logged, counted,
dead-lettered and reported to Sentry, then execution returns normally.
"""

import logging
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Callable, Dict, Optional

from asgiref.sync import async_to_sync
from django.conf import settings
from django.db import transaction

from retail_crawler.dead_letters import record_failed_job
from retail_crawler.exceptions import FetchError, IngestionError, ScraperResolutionError
from retail_crawler.extractors.results import ListingReference
from retail_crawler.fetchers import get_fetcher
from retail_crawler.health import get_health_service
from retail_crawler.ingestion import ListingIngestionService
from retail_crawler.models import Retailer
from retail_crawler.monitoring import add_crawl_breadcrumb, capture_crawl_error
from retail_crawler.pacing import RetailerPacer
from retail_crawler.scrapers.registry import get_registry
from retail_crawler.statistics import get_statistics_recorder

logger = logging.getLogger(__name__)

OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


@dataclass
class CrawlJob:
    """One fetch-then-extract unit of work for a single URL."""

    scraper_key: str
    url: str
    retailer_slug: Optional[str] = None
    crawl_id: Optional[str] = None
    use_advanced_adapter: bool = True
    queue: str = "crawler"
    delay_seconds: int = 0

    @property
    def adapter(self) -> str:
        return "advanced" if self.use_advanced_adapter else "standard"

    def to_payload(self) -> dict:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict) -> "CrawlJob":
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in payload.items() if key in known})


@dataclass
class CrawlOutcome:
    """Result of executing one CrawlJob."""

    url: str
    status: str
    retailer_slug: Optional[str] = None
    reason: Optional[str] = None
    duration_ms: Optional[int] = None
    records: Dict[str, int] = field(default_factory=lambda: {"listing": 0, "product": 0, "review": 0})
    follow_up_jobs: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == OUTCOME_SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status == OUTCOME_FAILED

    @property
    def skipped(self) -> bool:
        return self.status == OUTCOME_SKIPPED

    def to_dict(self) -> dict:
        return asdict(self)


def _enqueue_after_commit(job: CrawlJob) -> None:
    from retail_crawler.tasks import crawl_url

    # The worker must see the committed listing row
    transaction.on_commit(
        lambda: crawl_url.apply_async(
            kwargs={"payload": job.to_payload()},
            queue=job.queue,
            countdown=job.delay_seconds or None,
        )
    )


class CrawlJobExecutor:
    """Executes crawl jobs with injectable collaborators."""

    def __init__(
        self,
        registry=None,
        health=None,
        statistics=None,
        ingestion=None,
        pacer: Optional[RetailerPacer] = None,
        fetcher_factory: Callable = get_fetcher,
        dead_letter: Callable = record_failed_job,
        enqueue: Callable[[CrawlJob], None] = _enqueue_after_commit,
        stagger_seconds: Optional[int] = None,
    ):
        self.registry = registry or get_registry()
        self.health = health or get_health_service()
        self.statistics = statistics or get_statistics_recorder()
        self.ingestion = ingestion or ListingIngestionService()
        self.pacer = pacer or RetailerPacer()
        self.fetcher_factory = fetcher_factory
        self.dead_letter = dead_letter
        self.enqueue = enqueue
        if stagger_seconds is None:
            stagger_seconds = getattr(settings, "CRAWLER_STAGGER_SECONDS", 5)
        self.stagger_seconds = stagger_seconds

    def execute(self, job: CrawlJob) -> CrawlOutcome:
        try:
            scraper = self.registry.create(job.scraper_key)
        except ScraperResolutionError as e:
            logger.error(f"Skipping crawl of {job.url}: {e}")
            return CrawlOutcome(url=job.url, status=OUTCOME_SKIPPED, retailer_slug=job.retailer_slug, reason=str(e))

        retailer = self._find_retailer(job, scraper)
        if retailer is None:
            reason = f"retailer '{job.retailer_slug or scraper.retailer_slug}' not found"
            logger.error(f"Skipping crawl of {job.url}: {reason}")
            return CrawlOutcome(url=job.url, status=OUTCOME_SKIPPED, retailer_slug=job.retailer_slug, reason=reason)

        reason = self.health.get_skip_reason(retailer, registry=self.registry)
        if reason:
            logger.info(f"Skipping crawl of {job.url} for {retailer.slug}: {reason}")
            return CrawlOutcome(url=job.url, status=OUTCOME_SKIPPED, retailer_slug=retailer.slug, reason=reason)

        self.statistics.record_started(retailer)
        add_crawl_breadcrumb(
            retailer_slug=retailer.slug,
            url=job.url,
            adapter=job.adapter,
            message="Crawl job started",
            extra_data={"crawl_id": job.crawl_id},
        )

        started = time.monotonic()
        outcome = CrawlOutcome(url=job.url, status=OUTCOME_SUCCEEDED, retailer_slug=retailer.slug)

        try:
            self._run(job, scraper, retailer, outcome)
        except Exception as e:
            outcome.status = OUTCOME_FAILED
            outcome.reason = f"{type(e).__name__}: {e}"
            outcome.duration_ms = int((time.monotonic() - started) * 1000)
            self._report_failure(job, retailer, e, outcome)
            return outcome

        outcome.duration_ms = int((time.monotonic() - started) * 1000)
        self.health.record_success(retailer, duration_ms=outcome.duration_ms)
        self.statistics.record_completed(
            retailer,
            duration_ms=outcome.duration_ms,
            listings_discovered=outcome.records["listing"],
            details_extracted=outcome.records["product"],
        )
        logger.info(
            f"Crawled {job.url} for {retailer.slug} in {outcome.duration_ms}ms: "
            f"{outcome.records['listing']} listings, {outcome.records['product']} products, "
            f"{outcome.records['review']} reviews, {outcome.follow_up_jobs} product crawl(s) queued"
        )
        return outcome

    def _find_retailer(self, job: CrawlJob, scraper) -> Optional[Retailer]:
        slug = job.retailer_slug or scraper.retailer_slug
        if slug:
            return Retailer.objects.filter(slug=slug).first()
        return Retailer.objects.filter(scraper_key=job.scraper_key).order_by("name", "pk").first()

    def _run(self, job: CrawlJob, scraper, retailer: Retailer, outcome: CrawlOutcome) -> None:
        interval_ms = retailer.rate_limit_ms
        if interval_ms is None:
            interval_ms = scraper.request_delay_ms
        if interval_ms is None:
            interval_ms = getattr(settings, "CRAWLER_DEFAULT_RATE_LIMIT_MS", 1000)
        self.pacer.wait(retailer.slug, interval_ms)

        response = async_to_sync(self._fetch)(job, scraper)
        if not response.success:
            raise FetchError(job.url, response.error or f"HTTP {response.status_code}", response.status_code)

        failures = []
        for record in scraper.extract(response.content, job.url):
            try:
                stored = self.ingestion.ingest(retailer, record, job.url)
            except IngestionError as e:
                logger.warning(f"Ingestion failed for {job.url}: {e}")
                failures.append(str(e))
                continue
            outcome.records[record.kind] = outcome.records.get(record.kind, 0) + 1

            if isinstance(record, ListingReference) and getattr(stored, "newly_discovered", False):
                self._queue_product_crawl(job, retailer, record.url, outcome)

        if failures:
            raise IngestionError(
                f"{len(failures)} record(s) from {job.url} could not be ingested",
                failures=failures,
            )

    def _queue_product_crawl(self, job: CrawlJob, retailer: Retailer, url: str, outcome: CrawlOutcome) -> None:
        """Queue a crawl of a newly discovered product page, staggered after its siblings."""
        self.enqueue(CrawlJob(
            scraper_key=job.scraper_key,
            url=url,
            retailer_slug=retailer.slug,
            crawl_id=job.crawl_id,
            use_advanced_adapter=job.use_advanced_adapter,
            queue=job.queue,
            delay_seconds=outcome.follow_up_jobs * self.stagger_seconds,
        ))
        outcome.follow_up_jobs += 1

    async def _fetch(self, job: CrawlJob, scraper):
        fetcher = self.fetcher_factory(job.use_advanced_adapter)
        async with fetcher:
            return await fetcher.fetch(job.url, headers=scraper.get_request_headers())

    def _report_failure(self, job: CrawlJob, retailer: Retailer, error: Exception, outcome: CrawlOutcome) -> None:
        logger.error(f"Crawl job failed for {job.url} ({retailer.slug}): {outcome.reason}")

        self.health.record_failure(retailer, duration_ms=outcome.duration_ms, error=outcome.reason)
        self.statistics.record_failed(retailer)
        self.dead_letter(job, error, retailer)
        capture_crawl_error(
            error=error,
            retailer=retailer,
            url=job.url,
            adapter=job.adapter,
            extra_context={"crawl_id": job.crawl_id, "queue": job.queue},
        )


def execute_crawl_job(job: CrawlJob, **collaborators) -> CrawlOutcome:
    """Execute one crawl job with default collaborators unless overridden."""
    return CrawlJobExecutor(**collaborators).execute(job)
