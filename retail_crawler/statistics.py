"""
Per-retailer, per-day crawl statistics.

Counters are incremented in place with F() expressions so concurrent
workers never lose an update. The row for a (retailer, date) pair is created
on the first event of that day.
"""

import logging
from datetime import date
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import F, Sum
from django.utils import timezone

from retail_crawler.models import CrawlStatistic, Retailer

logger = logging.getLogger(__name__)

COUNTER_FIELDS = (
    "crawls_started",
    "crawls_completed",
    "crawls_failed",
    "listings_discovered",
    "details_extracted",
)


class CrawlStatisticsRecorder:
    """Records crawl events into CrawlStatistic rows."""

    def _today(self) -> date:
        return timezone.localdate()

    def _get_row_id(self, retailer: Retailer, day: date) -> int:
        try:
            with transaction.atomic():
                stat, _ = CrawlStatistic.objects.get_or_create(retailer=retailer, date=day)
        except IntegrityError:
            # Lost the creation race to another worker
            stat = CrawlStatistic.objects.get(retailer=retailer, date=day)
        return stat.pk

    def increment(self, retailer: Retailer, day: Optional[date] = None, **counters) -> None:
        """
        Increment one or more counters for a retailer.

        Example:
            recorder.increment(retailer, crawls_started=1)
        """
        unknown = set(counters) - set(COUNTER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown statistic counters: {', '.join(sorted(unknown))}")

        updates = {name: F(name) + amount for name, amount in counters.items() if amount}
        if not updates:
            return

        row_id = self._get_row_id(retailer, day or self._today())
        CrawlStatistic.objects.filter(pk=row_id).update(**updates)

    def record_started(self, retailer: Retailer) -> None:
        self.increment(retailer, crawls_started=1)

    def record_completed(
        self,
        retailer: Retailer,
        duration_ms: Optional[int] = None,
        listings_discovered: int = 0,
        details_extracted: int = 0,
    ) -> None:
        """Record a successful crawl and fold its duration into the running mean."""
        row_id = self._get_row_id(retailer, self._today())

        with transaction.atomic():
            stat = CrawlStatistic.objects.select_for_update().get(pk=row_id)
            completed = stat.crawls_completed + 1
            average = stat.average_duration_ms
            if duration_ms is not None:
                average = round(average + (duration_ms - average) / completed)

            CrawlStatistic.objects.filter(pk=row_id).update(
                crawls_completed=F("crawls_completed") + 1,
                listings_discovered=F("listings_discovered") + listings_discovered,
                details_extracted=F("details_extracted") + details_extracted,
                average_duration_ms=max(average, 0),
            )

    def record_failed(self, retailer: Retailer) -> None:
        self.increment(retailer, crawls_failed=1)

    def get_today(self, retailer: Retailer) -> Optional[CrawlStatistic]:
        return CrawlStatistic.objects.filter(retailer=retailer, date=self._today()).first()

    def get_summary(self, day: Optional[date] = None) -> dict:
        """Totals across all retailers for one day (default today)."""
        day = day or self._today()
        totals = CrawlStatistic.objects.filter(date=day).aggregate(
            **{name: Sum(name) for name in COUNTER_FIELDS}
        )
        totals = {name: totals[name] or 0 for name in COUNTER_FIELDS}

        finished = totals["crawls_completed"] + totals["crawls_failed"]
        totals["success_rate"] = (
            round(totals["crawls_completed"] / finished * 100, 1) if finished else None
        )
        totals["date"] = day.isoformat()
        return totals


# Singleton instance
_statistics_recorder: Optional[CrawlStatisticsRecorder] = None


def get_statistics_recorder() -> CrawlStatisticsRecorder:
    """Get the global statistics recorder."""
    global _statistics_recorder

    if _statistics_recorder is None:
        _statistics_recorder = CrawlStatisticsRecorder()

    return _statistics_recorder
