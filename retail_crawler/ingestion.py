"""
Default downstream collaborators for extracted records.

- ListingReference -> ProductListing upsert; a newly created listing is flagged
  with ``newly_discovered`` so the crawl job can queue its product page
- ProductRecord -> ProductListing upsert + ProductListingPrice append, then
  product_record_ingested for the product matching engine
- ReviewRecord -> ProductListingReview upsert by (listing, external_id)

Every write is idempotent on URL / external id, so redelivered or
re-crawled records update rather than duplicate.
"""

import logging
from decimal import Decimal
from typing import Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from retail_crawler.exceptions import IngestionError
from retail_crawler.extractors.results import ListingReference, ProductRecord, ReviewRecord
from retail_crawler.models import ProductListing, ProductListingPrice, ProductListingReview, Retailer
from retail_crawler.signals import product_record_ingested

logger = logging.getLogger(__name__)


class ListingIngestionService:
    """Persists extracted records for one retailer."""

    def ingest(self, retailer: Retailer, record, page_url: str):
        """
        Hand a record to the collaborator for its kind.

        Raises:
            IngestionError: if the record could not be stored
        """
        try:
            if isinstance(record, ListingReference):
                return self.ingest_listing_reference(retailer, record)
            if isinstance(record, ProductRecord):
                return self.ingest_product(retailer, record, page_url)
            if isinstance(record, ReviewRecord):
                listing = self.listing_for_page(retailer, page_url)
                return self.ingest_review(listing, record)
        except (DatabaseError, ArithmeticError, ValueError, TypeError) as e:
            raise IngestionError(f"Failed to ingest {type(record).__name__} from {page_url}: {e}") from e
        raise IngestionError(f"Unsupported record type {type(record).__name__}")

    def listing_for_page(self, retailer: Retailer, url: str) -> ProductListing:
        listing, _ = ProductListing.objects.get_or_create(retailer=retailer, url=url)
        return listing

    def _find_listing(self, retailer: Retailer, url: str, external_id: Optional[str]) -> Optional[ProductListing]:
        listing = ProductListing.objects.filter(retailer=retailer, url=url).first()
        if listing is None and external_id:
            listing = ProductListing.objects.filter(retailer=retailer, external_id=external_id).first()
        return listing

    def ingest_listing_reference(self, retailer: Retailer, reference: ListingReference) -> ProductListing:
        now = timezone.now()
        with transaction.atomic():
            listing, created = ProductListing.objects.get_or_create(
                retailer=retailer,
                url=reference.url,
                defaults={
                    "category": reference.category or "",
                    "metadata": {"discovery": reference.metadata},
                    "first_seen_at": now,
                    "last_seen_at": now,
                },
            )
            if not created:
                listing.last_seen_at = now
                if reference.category and not listing.category:
                    listing.category = reference.category
                listing.save(update_fields=["last_seen_at", "category"])

        listing.newly_discovered = created
        if created:
            logger.debug(f"New listing for {retailer.slug}: {reference.url}")
        return listing

    def ingest_product(self, retailer: Retailer, record: ProductRecord, page_url: str) -> ProductListing:
        now = timezone.now()
        price_known = not record.metadata.get("price_missing")

        with transaction.atomic():
            listing = self._find_listing(retailer, page_url, record.external_id)
            if listing is None:
                listing = ProductListing(retailer=retailer, url=page_url, first_seen_at=now)

            listing.external_id = record.external_id or listing.external_id
            listing.title = record.title[:500]
            listing.description = record.description or ""
            listing.brand = (record.brand or "")[:200]
            if price_known:
                listing.price_pence = record.price_pence
                listing.original_price_pence = record.original_price_pence
            listing.in_stock = record.in_stock
            listing.weight_grams = record.weight_grams
            listing.quantity = record.quantity
            listing.images = list(record.images)
            listing.barcode = (record.barcode or "")[:50]
            listing.category = record.category or listing.category
            listing.rating_value = (
                Decimal(str(record.rating_value)).quantize(Decimal("0.01"))
                if record.rating_value is not None else None
            )
            listing.rating_count = record.rating_count
            listing.metadata = {**(listing.metadata or {}), "details": record.metadata}
            listing.last_seen_at = now
            listing.details_extracted_at = now
            listing.save()

            if price_known:
                self._append_price(listing, record, now)

        product_record_ingested.send(sender=ProductListing, listing=listing, record=record)
        return listing

    def _append_price(self, listing: ProductListing, record: ProductRecord, now) -> Optional[ProductListingPrice]:
        latest = listing.prices.order_by("-recorded_at", "-id").first()
        if latest is not None and (
            latest.price_pence == record.price_pence
            and latest.original_price_pence == record.original_price_pence
            and latest.in_stock == record.in_stock
        ):
            return None
        return ProductListingPrice.objects.create(
            listing=listing,
            price_pence=record.price_pence,
            original_price_pence=record.original_price_pence,
            in_stock=record.in_stock,
            recorded_at=now,
        )

    def ingest_review(self, listing: ProductListing, record: ReviewRecord) -> ProductListingReview:
        review, _ = ProductListingReview.objects.update_or_create(
            listing=listing,
            external_id=record.external_id[:255],
            defaults={
                "rating": Decimal(str(record.rating)).quantize(Decimal("0.01")),
                "author": (record.author or "")[:200],
                "title": (record.title or "")[:500],
                "body": record.body,
                "review_date": record.review_date,
                "verified_purchase": record.verified_purchase,
                "helpful_count": record.helpful_count,
                "metadata": record.metadata,
            },
        )
        return review
