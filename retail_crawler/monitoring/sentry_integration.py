"""
Sentry error tracking integration for the retail crawler.

The SDK itself is initialised in settings/base.py when SENTRY_DSN is set;
without a DSN every call here is a cheap no-op inside sentry_sdk.

Usage:
    from retail_crawler.monitoring import capture_crawl_error, add_crawl_breadcrumb

    try:
        outcome = execute_crawl_job(job)
    except Exception as e:
        capture_crawl_error(error=e, retailer=retailer, url=job.url, adapter="standard")
"""

import logging
from typing import Dict, Any, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Sensitive fields to filter from Sentry events
SENSITIVE_FIELDS = {
    "cookies",
    "cookie",
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "password",
    "secret",
    "token",
    "x-api-key",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values for keys that look like credentials.

    Nested dicts are filtered recursively.
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()

        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value

    return filtered


def add_crawl_breadcrumb(
    retailer_slug: str,
    url: str,
    adapter: str,
    message: str = "Crawl operation",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb to Sentry for crawl context.

    Args:
        retailer_slug: Slug of the retailer being crawled
        url: URL being crawled
        adapter: Fetch adapter in use ("standard" or "advanced")
        message: Description of the operation
        level: Log level (info, warning, error)
        extra_data: Additional context data
    """
    breadcrumb_data = {
        "retailer": retailer_slug,
        "url": url,
        "adapter": adapter,
    }

    if extra_data:
        breadcrumb_data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(
            category="crawl",
            message=message,
            level=level,
            data=breadcrumb_data,
        )
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_crawl_error(
    error: Exception,
    retailer=None,
    url: Optional[str] = None,
    adapter: Optional[str] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture a crawl error to Sentry with retailer, URL and adapter context.

    Args:
        error: The exception that occurred
        retailer: Retailer instance (optional)
        url: URL where the error occurred
        adapter: Fetch adapter in use
        extra_context: Additional context (filtered for sensitive data)
    """
    retailer_slug = retailer.slug if retailer else "unknown"

    add_crawl_breadcrumb(
        retailer_slug=retailer_slug,
        url=url or "unknown",
        adapter=adapter or "unknown",
        message=f"Error: {type(error).__name__}",
        level="error",
        extra_data=extra_context,
    )

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("crawler.retailer", retailer_slug)
            scope.set_tag("crawler.adapter", adapter or "unknown")

            if retailer is not None:
                scope.set_extra("retailer_id", str(retailer.pk))
            if url:
                scope.set_extra("crawl_url", url)
            if extra_context:
                scope.set_extra("crawl_context", _filter_sensitive_data(extra_context))

            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")


def capture_alert(
    message: str,
    level: str = "warning",
    retailer=None,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an alert message to Sentry.

    Used when a retailer crosses a health threshold.
    """
    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("alert.type", "retailer_health")

            if retailer is not None:
                scope.set_tag("crawler.retailer", retailer.slug)
                scope.set_extra("retailer_id", str(retailer.pk))
            if extra_data:
                scope.set_extra("alert_data", _filter_sensitive_data(extra_data))

            sentry_sdk.capture_message(message, level=level)

    except Exception as e:
        logger.warning(f"Failed to capture alert to Sentry: {e}")
