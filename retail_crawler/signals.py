"""
Django signals for the retail crawler.

- retailer_status_changed: sent after every retailer status change, whether
  triggered by an operator, the pause-expiry sweep, or crawl outcomes.
  Arguments: retailer, old_status, new_status, reason, triggered_by.
- product_record_ingested: sent after a ProductRecord has been persisted, so
  the product matching engine can pick it up.
  Arguments: listing, record.
"""

import logging

from django.dispatch import Signal, receiver

logger = logging.getLogger(__name__)

retailer_status_changed = Signal()
product_record_ingested = Signal()


@receiver(retailer_status_changed)
def log_retailer_status_change(sender, retailer, old_status, new_status, reason=None,
                               triggered_by=None, **kwargs):
    """Log every retailer status change."""
    logger.info(
        f"Retailer {retailer.slug} status changed: {old_status} -> {new_status} "
        f"(by {triggered_by or 'system'}{', reason: ' + reason if reason else ''})"
    )
