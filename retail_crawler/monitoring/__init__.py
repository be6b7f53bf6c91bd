"""
Monitoring for the retail crawler.

- Sentry error tracking with crawl context (retailer, URL, adapter)
- Breadcrumbs for crawl steps
- Threshold alerts when a retailer degrades or fails
"""

from .sentry_integration import add_crawl_breadcrumb, capture_alert, capture_crawl_error

__all__ = [
    "add_crawl_breadcrumb",
    "capture_alert",
    "capture_crawl_error",
]
