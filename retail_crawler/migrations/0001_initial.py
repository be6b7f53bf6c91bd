"""
Migration: Initial retail crawler schema.

Creates retailers, crawl_statistics, failed_crawl_jobs and the default
product listing persistence tables.
"""

import uuid
from django.db import migrations, models
import django.core.validators
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Retailer",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(help_text="Human-readable name", max_length=100)),
                (
                    "slug",
                    models.SlugField(
                        help_text="URL-safe identifier (immutable)",
                        max_length=100,
                        unique=True,
                    ),
                ),
                ("base_url", models.URLField(help_text="Base URL of the retailer")),
                (
                    "scraper_key",
                    models.CharField(
                        blank=True,
                        help_text="Registry key of the scraper bound to this retailer",
                        max_length=100,
                        null=True,
                    ),
                ),
                (
                    "rate_limit_ms",
                    models.PositiveIntegerField(
                        blank=True,
                        null=True,
                        help_text="Minimum milliseconds between requests to this retailer; empty uses the scraper's delay",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("paused", "Paused"),
                            ("disabled", "Disabled"),
                            ("degraded", "Degraded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=20,
                    ),
                ),
                (
                    "paused_until",
                    models.DateTimeField(
                        blank=True,
                        help_text="Pause expiry, set only while paused",
                        null=True,
                    ),
                ),
                (
                    "consecutive_failures",
                    models.PositiveIntegerField(
                        default=0,
                        validators=[django.core.validators.MinValueValidator(0)],
                    ),
                ),
                ("last_failure_at", models.DateTimeField(blank=True, null=True)),
                ("last_success_at", models.DateTimeField(blank=True, null=True)),
                (
                    "last_crawled_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Last time crawl jobs were dispatched",
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "retailers",
                "ordering": ["name"],
                "indexes": [
                    models.Index(
                        fields=["status", "paused_until"],
                        name="retailers_status_2f1c7e_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CrawlStatistic",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("date", models.DateField()),
                ("crawls_started", models.PositiveIntegerField(default=0)),
                ("crawls_completed", models.PositiveIntegerField(default=0)),
                ("crawls_failed", models.PositiveIntegerField(default=0)),
                ("listings_discovered", models.PositiveIntegerField(default=0)),
                ("details_extracted", models.PositiveIntegerField(default=0)),
                (
                    "average_duration_ms",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Running mean duration of completed crawls",
                    ),
                ),
                (
                    "retailer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="crawl_statistics",
                        to="retail_crawler.retailer",
                    ),
                ),
            ],
            options={
                "db_table": "crawl_statistics",
                "ordering": ["-date"],
                "unique_together": {("retailer", "date")},
            },
        ),
        migrations.CreateModel(
            name="FailedCrawlJob",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("queue", models.CharField(default="crawler", max_length=100)),
                ("task_name", models.CharField(max_length=200)),
                ("payload", models.JSONField(default=dict)),
                (
                    "exception",
                    models.TextField(help_text="Exception type, message and traceback"),
                ),
                (
                    "failed_at",
                    models.DateTimeField(db_index=True, default=django.utils.timezone.now),
                ),
                ("url", models.URLField(blank=True, max_length=2000)),
                (
                    "retailer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="failed_jobs",
                        to="retail_crawler.retailer",
                    ),
                ),
            ],
            options={
                "db_table": "failed_crawl_jobs",
                "ordering": ["-failed_at"],
            },
        ),
        migrations.CreateModel(
            name="ProductListing",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("url", models.URLField(max_length=2000)),
                ("external_id", models.CharField(blank=True, max_length=255, null=True)),
                ("category", models.CharField(blank=True, max_length=100)),
                ("title", models.CharField(blank=True, max_length=500)),
                ("description", models.TextField(blank=True)),
                ("brand", models.CharField(blank=True, max_length=200)),
                ("price_pence", models.PositiveIntegerField(blank=True, null=True)),
                ("original_price_pence", models.PositiveIntegerField(blank=True, null=True)),
                ("in_stock", models.BooleanField(default=True)),
                ("weight_grams", models.PositiveIntegerField(blank=True, null=True)),
                ("quantity", models.PositiveIntegerField(blank=True, null=True)),
                ("images", models.JSONField(blank=True, default=list)),
                ("barcode", models.CharField(blank=True, max_length=50)),
                (
                    "rating_value",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=3, null=True),
                ),
                ("rating_count", models.PositiveIntegerField(blank=True, null=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("first_seen_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("last_seen_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("details_extracted_at", models.DateTimeField(blank=True, null=True)),
                (
                    "retailer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="listings",
                        to="retail_crawler.retailer",
                    ),
                ),
            ],
            options={
                "db_table": "product_listings",
                "ordering": ["-last_seen_at"],
                "unique_together": {("retailer", "url")},
                "indexes": [
                    models.Index(
                        fields=["retailer", "external_id"],
                        name="product_lis_retaile_8d3b41_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProductListingPrice",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("price_pence", models.PositiveIntegerField()),
                ("original_price_pence", models.PositiveIntegerField(blank=True, null=True)),
                ("in_stock", models.BooleanField(default=True)),
                ("recorded_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="prices",
                        to="retail_crawler.productlisting",
                    ),
                ),
            ],
            options={
                "db_table": "product_listing_prices",
                "ordering": ["-recorded_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="ProductListingReview",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("external_id", models.CharField(max_length=255)),
                (
                    "rating",
                    models.DecimalField(blank=True, decimal_places=2, max_digits=3, null=True),
                ),
                ("author", models.CharField(blank=True, max_length=200)),
                ("title", models.CharField(blank=True, max_length=500)),
                ("body", models.TextField(blank=True)),
                ("review_date", models.DateField(blank=True, null=True)),
                ("verified_purchase", models.BooleanField(default=False)),
                ("helpful_count", models.PositiveIntegerField(default=0)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reviews",
                        to="retail_crawler.productlisting",
                    ),
                ),
            ],
            options={
                "db_table": "product_listing_reviews",
                "ordering": ["-review_date", "-created_at"],
                "unique_together": {("listing", "external_id")},
            },
        ),
    ]
