"""
Service health check endpoint for monitoring and load balancer checks.
"""

import logging

from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse

from retail_crawler.models import Retailer, RetailerStatus
from retail_crawler.statistics import get_statistics_recorder

logger = logging.getLogger(__name__)

CACHE_PROBE_KEY = "crawler:health-check"


def get_celery_worker_count():
    """
    Get the count of active Celery workers.

    Returns:
        int: Number of active workers, 0 if no worker answered.
    """
    from config.celery import app as celery_app

    try:
        active = celery_app.control.inspect(timeout=1.0).active()
    except Exception as e:
        logger.debug(f"Celery inspect failed: {e}")
        return 0
    return len(active) if active else 0


def health_check(request):
    """
    Health check endpoint for the crawler service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - cache: "connected" or "error"
        - celery_workers: integer count of active workers
        - retailers: count of retailers per status
        - crawls_today: today's crawl totals across retailers

    Returns:
        JsonResponse: HTTP 200 for healthy, HTTP 503 for unhealthy
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    # The cache carries locks and pacing, so it counts towards health
    cache_status = "connected"
    try:
        cache.set(CACHE_PROBE_KEY, "ok", 10)
        if cache.get(CACHE_PROBE_KEY) != "ok":
            cache_status = "error"
    except Exception as e:
        logger.error(f"Health check cache error: {e}")
        cache_status = "error"
    if cache_status == "error":
        status = "unhealthy"
        http_status = 503

    retailers = {}
    crawls_today = None
    if database_status == "connected":
        retailers = {choice.value: 0 for choice in RetailerStatus}
        for row in Retailer.objects.values_list("status", flat=True):
            retailers[row] = retailers.get(row, 0) + 1
        crawls_today = get_statistics_recorder().get_summary()

    response_data = {
        "status": status,
        "database": database_status,
        "cache": cache_status,
        "celery_workers": get_celery_worker_count(),
        "retailers": retailers,
        "crawls_today": crawls_today,
    }

    return JsonResponse(response_data, status=http_status)
