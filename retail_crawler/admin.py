"""
Django admin configuration for Retail Crawler models.

Retailer status changes made here go through the health service, so the
transition table and status-changed notifications apply as they do for the
API and management commands.
"""

from django.contrib import admin, messages
from django.utils.html import format_html

from retail_crawler import dead_letters
from retail_crawler.health import get_health_service
from retail_crawler.models import (
    CrawlStatistic,
    FailedCrawlJob,
    ProductListing,
    ProductListingPrice,
    Retailer,
)

BADGE_COLORS = {
    "green": "#28a745",
    "yellow": "#ffc107",
    "gray": "#6c757d",
    "orange": "#fd7e14",
    "red": "#dc3545",
}


@admin.register(Retailer)
class RetailerAdmin(admin.ModelAdmin):
    """
    Admin interface for retailers.

    Status is read-only here; use the pause/resume/disable/enable actions.
    """

    list_display = [
        "name",
        "slug",
        "scraper_key",
        "status_badge",
        "paused_until",
        "consecutive_failures",
        "last_crawled_at",
        "last_success_at",
    ]
    list_filter = ["status", "scraper_key"]
    search_fields = ["name", "slug", "base_url"]
    readonly_fields = [
        "id",
        "status",
        "paused_until",
        "consecutive_failures",
        "last_failure_at",
        "last_success_at",
        "last_crawled_at",
        "created_at",
        "updated_at",
    ]
    prepopulated_fields = {"slug": ("name",)}
    ordering = ["name"]

    fieldsets = (
        ("Identity", {
            "fields": ("id", "name", "slug", "base_url"),
        }),
        ("Crawl Configuration", {
            "fields": ("scraper_key", "rate_limit_ms"),
        }),
        ("Health", {
            "fields": (
                "status",
                "paused_until",
                "consecutive_failures",
                "last_failure_at",
                "last_success_at",
                "last_crawled_at",
            ),
        }),
        ("Metadata", {
            "fields": ("created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )

    actions = ["pause_retailers", "resume_retailers", "disable_retailers", "enable_retailers"]

    def get_readonly_fields(self, request, obj=None):
        # Slug is immutable once created
        if obj is not None:
            return self.readonly_fields + ["slug"]
        return self.readonly_fields

    def get_prepopulated_fields(self, request, obj=None):
        if obj is not None:
            return {}
        return self.prepopulated_fields

    def status_badge(self, obj):
        """Display status as colored badge."""
        status = obj.status_enum
        return format_html(
            '<span style="background-color: {}; color: white; '
            'padding: 2px 8px; border-radius: 4px;" title="{}">{}</span>',
            BADGE_COLORS[status.color], status.description, status.label
        )
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    def _apply(self, request, queryset, action, verb):
        health = get_health_service()
        changed = 0
        for retailer in queryset:
            result = getattr(health, action)(retailer, triggered_by=f"admin:{request.user}")
            if result.success:
                changed += 1
            else:
                self.message_user(request, f"{retailer.name}: {result.message}", level=messages.WARNING)
        self.message_user(request, f"{verb} {changed} retailer(s).")

    @admin.action(description="Pause selected retailers (default duration)")
    def pause_retailers(self, request, queryset):
        self._apply(request, queryset, "pause", "Paused")

    @admin.action(description="Resume selected retailers")
    def resume_retailers(self, request, queryset):
        self._apply(request, queryset, "resume", "Resumed")

    @admin.action(description="Disable selected retailers")
    def disable_retailers(self, request, queryset):
        self._apply(request, queryset, "disable", "Disabled")

    @admin.action(description="Enable selected retailers")
    def enable_retailers(self, request, queryset):
        self._apply(request, queryset, "enable", "Enabled")


@admin.register(CrawlStatistic)
class CrawlStatisticAdmin(admin.ModelAdmin):
    """Read-only view of daily crawl counters."""

    list_display = [
        "retailer",
        "date",
        "crawls_started",
        "crawls_completed",
        "crawls_failed",
        "listings_discovered",
        "details_extracted",
        "average_duration_ms",
        "success_rate_display",
    ]
    list_filter = ["retailer", "date"]
    date_hierarchy = "date"
    ordering = ["-date", "retailer__name"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def success_rate_display(self, obj):
        return f"{obj.success_rate}%"
    success_rate_display.short_description = "Success rate"


@admin.register(FailedCrawlJob)
class FailedCrawlJobAdmin(admin.ModelAdmin):
    """Dead-lettered crawl jobs with retry and delete actions."""

    list_display = ["id", "retailer", "url", "queue", "exception_summary", "failed_at"]
    list_filter = ["queue", "retailer"]
    search_fields = ["url", "exception"]
    readonly_fields = ["queue", "task_name", "payload", "exception", "failed_at", "retailer", "url"]
    ordering = ["-failed_at"]

    actions = ["retry_jobs", "delete_jobs"]

    def has_add_permission(self, request):
        return False

    @admin.action(description="Retry selected jobs")
    def retry_jobs(self, request, queryset):
        retried = sum(1 for job_id in queryset.values_list("pk", flat=True) if dead_letters.retry_failed_job(job_id))
        self.message_user(request, f"Re-enqueued {retried} job(s).")

    @admin.action(description="Delete selected jobs")
    def delete_jobs(self, request, queryset):
        count, _ = queryset.delete()
        self.message_user(request, f"Deleted {count} job(s).")


class ProductListingPriceInline(admin.TabularInline):
    model = ProductListingPrice
    extra = 0
    readonly_fields = ["price_pence", "original_price_pence", "in_stock", "recorded_at"]
    can_delete = False


@admin.register(ProductListing)
class ProductListingAdmin(admin.ModelAdmin):
    list_display = ["title", "retailer", "price_pence", "in_stock", "category", "last_seen_at"]
    list_filter = ["retailer", "in_stock", "category"]
    search_fields = ["title", "url", "external_id", "brand"]
    readonly_fields = ["id", "first_seen_at", "last_seen_at", "details_extracted_at"]
    inlines = [ProductListingPriceInline]
