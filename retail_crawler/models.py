"""
Django models for the Retail Crawler.

Models: Retailer, CrawlStatistic, FailedCrawlJob, ProductListing,
        ProductListingPrice, ProductListingReview

Retailer rows carry the crawl configuration and health state of each
upstream source. CrawlStatistic holds per-day counters. FailedCrawlJob is the
dead-letter store for crawl jobs that failed at execution time.
"""

import uuid
from django.db import models
from django.utils import timezone
from django.core.validators import MinValueValidator


class RetailerStatus(models.TextChoices):
    """Health status of a retailer."""

    ACTIVE = "active", "Active"
    PAUSED = "paused", "Paused"
    DISABLED = "disabled", "Disabled"
    DEGRADED = "degraded", "Degraded"
    FAILED = "failed", "Failed"

    @property
    def color(self) -> str:
        return _STATUS_COLORS[self]

    @property
    def description(self) -> str:
        return _STATUS_DESCRIPTIONS[self]

    @property
    def is_crawlable(self) -> bool:
        return self in self.crawlable_statuses()

    @property
    def has_issues(self) -> bool:
        return self in (RetailerStatus.DEGRADED, RetailerStatus.FAILED)

    @property
    def requires_intervention(self) -> bool:
        return self in (RetailerStatus.FAILED, RetailerStatus.DISABLED)

    @property
    def allowed_transitions(self) -> tuple:
        return _ALLOWED_TRANSITIONS[self]

    def can_transition_to(self, target) -> bool:
        """Check whether moving to ``target`` is allowed. Staying put always is."""
        target = RetailerStatus(target)
        if target == self:
            return True
        return target in self.allowed_transitions

    @classmethod
    def crawlable_statuses(cls) -> tuple:
        return (cls.ACTIVE, cls.DEGRADED, cls.FAILED)


_STATUS_COLORS = {
    RetailerStatus.ACTIVE: "green",
    RetailerStatus.PAUSED: "yellow",
    RetailerStatus.DISABLED: "gray",
    RetailerStatus.DEGRADED: "orange",
    RetailerStatus.FAILED: "red",
}

_STATUS_DESCRIPTIONS = {
    RetailerStatus.ACTIVE: "Crawling normally",
    RetailerStatus.PAUSED: "Temporarily excluded from crawling until the pause expires",
    RetailerStatus.DISABLED: "Excluded from crawling until re-enabled by an operator",
    RetailerStatus.DEGRADED: "Crawling, but recent attempts are failing",
    RetailerStatus.FAILED: "Crawling, but every recent attempt has failed",
}

_ALLOWED_TRANSITIONS = {
    RetailerStatus.ACTIVE: (
        RetailerStatus.PAUSED,
        RetailerStatus.DISABLED,
        RetailerStatus.DEGRADED,
        RetailerStatus.FAILED,
    ),
    RetailerStatus.DEGRADED: (
        RetailerStatus.ACTIVE,
        RetailerStatus.PAUSED,
        RetailerStatus.DISABLED,
        RetailerStatus.FAILED,
    ),
    RetailerStatus.FAILED: (
        RetailerStatus.ACTIVE,
        RetailerStatus.PAUSED,
        RetailerStatus.DISABLED,
    ),
    RetailerStatus.PAUSED: (
        RetailerStatus.ACTIVE,
        RetailerStatus.DISABLED,
    ),
    RetailerStatus.DISABLED: (
        RetailerStatus.ACTIVE,
    ),
}


class Retailer(models.Model):
    """
    An upstream retail website with its own crawl configuration and health state.

    Status changes go through RetailerHealthService; the slug is fixed once
    the row exists because scheduled commands refer to retailers by slug.
    """

    # Identity
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, help_text="Human-readable name")
    slug = models.SlugField(
        max_length=100, unique=True, help_text="URL-safe identifier (immutable)"
    )
    base_url = models.URLField(help_text="Base URL of the retailer")

    # Crawl Configuration
    scraper_key = models.CharField(
        max_length=100,
        blank=True,
        null=True,
        help_text="Registry key of the scraper bound to this retailer",
    )
    rate_limit_ms = models.PositiveIntegerField(
        blank=True,
        null=True,
        help_text="Minimum milliseconds between requests to this retailer; empty uses the scraper's delay",
    )

    # Health
    status = models.CharField(
        max_length=20,
        choices=RetailerStatus.choices,
        default=RetailerStatus.ACTIVE,
        db_index=True,
    )
    paused_until = models.DateTimeField(
        null=True, blank=True, help_text="Pause expiry, set only while paused"
    )
    consecutive_failures = models.PositiveIntegerField(
        default=0, validators=[MinValueValidator(0)]
    )
    last_failure_at = models.DateTimeField(null=True, blank=True)
    last_success_at = models.DateTimeField(null=True, blank=True)
    last_crawled_at = models.DateTimeField(
        null=True, blank=True, help_text="Last time crawl jobs were dispatched"
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_slug = instance.__dict__.get("slug")
        return instance

    def save(self, *args, **kwargs):
        loaded_slug = getattr(self, "_loaded_slug", None)
        if loaded_slug is not None and self.slug != loaded_slug:
            raise ValueError(f"Retailer slug is immutable (was '{loaded_slug}')")
        super().save(*args, **kwargs)
        self._loaded_slug = self.slug

    class Meta:
        db_table = "retailers"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status", "paused_until"], name="retailers_status_2f1c7e_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.slug})"

    @property
    def status_enum(self) -> RetailerStatus:
        return RetailerStatus(self.status)

    @property
    def is_paused(self) -> bool:
        return self.status == RetailerStatus.PAUSED

    @property
    def is_crawlable(self) -> bool:
        return self.status_enum.is_crawlable


class CrawlStatistic(models.Model):
    """
    Per-retailer, per-day crawl counters.

    Created lazily on the first event of the day and only ever incremented.
    """

    retailer = models.ForeignKey(
        Retailer, on_delete=models.PROTECT, related_name="crawl_statistics"
    )
    date = models.DateField()
    crawls_started = models.PositiveIntegerField(default=0)
    crawls_completed = models.PositiveIntegerField(default=0)
    crawls_failed = models.PositiveIntegerField(default=0)
    listings_discovered = models.PositiveIntegerField(default=0)
    details_extracted = models.PositiveIntegerField(default=0)
    average_duration_ms = models.PositiveIntegerField(
        default=0, help_text="Running mean duration of completed crawls"
    )

    class Meta:
        db_table = "crawl_statistics"
        ordering = ["-date"]
        unique_together = ["retailer", "date"]

    def __str__(self):
        return f"{self.retailer.slug} {self.date}"

    @property
    def success_rate(self) -> float:
        finished = self.crawls_completed + self.crawls_failed
        if not finished:
            return 0.0
        return round(self.crawls_completed / finished * 100, 1)


class FailedCrawlJob(models.Model):
    """
    Dead-letter entry for a crawl job that failed during execution.

    The payload is the serialized CrawlJob, so a retry re-enqueues it as-is
    on its original queue.
    """

    queue = models.CharField(max_length=100, default="crawler")
    task_name = models.CharField(max_length=200)
    payload = models.JSONField(default=dict)
    exception = models.TextField(help_text="Exception type, message and traceback")
    failed_at = models.DateTimeField(default=timezone.now, db_index=True)

    # Denormalized for operator filtering
    retailer = models.ForeignKey(
        Retailer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="failed_jobs",
    )
    url = models.URLField(max_length=2000, blank=True)

    class Meta:
        db_table = "failed_crawl_jobs"
        ordering = ["-failed_at"]

    def __str__(self):
        return f"Failed job {self.pk} ({self.url[:80]})"

    @property
    def exception_summary(self) -> str:
        """First line of the stored exception."""
        return self.exception.strip().splitlines()[0] if self.exception.strip() else ""


class ProductListing(models.Model):
    """A product page on a retailer's site, discovered or extracted by a crawl."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    retailer = models.ForeignKey(
        Retailer, on_delete=models.CASCADE, related_name="listings"
    )
    url = models.URLField(max_length=2000)
    external_id = models.CharField(max_length=255, blank=True, null=True)
    category = models.CharField(max_length=100, blank=True)

    # Product details (empty until the detail page has been extracted)
    title = models.CharField(max_length=500, blank=True)
    description = models.TextField(blank=True)
    brand = models.CharField(max_length=200, blank=True)
    price_pence = models.PositiveIntegerField(null=True, blank=True)
    original_price_pence = models.PositiveIntegerField(null=True, blank=True)
    in_stock = models.BooleanField(default=True)
    weight_grams = models.PositiveIntegerField(null=True, blank=True)
    quantity = models.PositiveIntegerField(null=True, blank=True)
    images = models.JSONField(default=list, blank=True)
    barcode = models.CharField(max_length=50, blank=True)
    rating_value = models.DecimalField(max_digits=3, decimal_places=2, null=True, blank=True)
    rating_count = models.PositiveIntegerField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    first_seen_at = models.DateTimeField(default=timezone.now)
    last_seen_at = models.DateTimeField(default=timezone.now)
    details_extracted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "product_listings"
        ordering = ["-last_seen_at"]
        unique_together = ["retailer", "url"]
        indexes = [
            models.Index(fields=["retailer", "external_id"], name="product_lis_retaile_8d3b41_idx"),
        ]

    def __str__(self):
        return self.title or self.url[:100]


class ProductListingPrice(models.Model):
    """Price history entry, appended when a listing's price is first seen or changes."""

    listing = models.ForeignKey(
        ProductListing, on_delete=models.CASCADE, related_name="prices"
    )
    price_pence = models.PositiveIntegerField()
    original_price_pence = models.PositiveIntegerField(null=True, blank=True)
    in_stock = models.BooleanField(default=True)
    recorded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "product_listing_prices"
        ordering = ["-recorded_at", "-id"]

    def __str__(self):
        return f"{self.listing_id} {self.price_pence}p"


class ProductListingReview(models.Model):
    """A customer review of a listing, upserted by its stable external id."""

    listing = models.ForeignKey(
        ProductListing, on_delete=models.CASCADE, related_name="reviews"
    )
    external_id = models.CharField(max_length=255)
    rating = models.DecimalField(max_digits=3, decimal_places=2, null=True, blank=True)
    author = models.CharField(max_length=200, blank=True)
    title = models.CharField(max_length=500, blank=True)
    body = models.TextField(blank=True)
    review_date = models.DateField(null=True, blank=True)
    verified_purchase = models.BooleanField(default=False)
    helpful_count = models.PositiveIntegerField(default=0)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "product_listing_reviews"
        ordering = ["-review_date", "-created_at"]
        unique_together = ["listing", "external_id"]

    def __str__(self):
        return f"{self.external_id} ({self.rating})"
