"""
Operator API views.

REST endpoints for retailer status control, crawl dispatch, crawl
statistics and the dead-letter queue.

All endpoints require authentication.
"""

import logging
from datetime import date

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from retail_crawler import dead_letters
from retail_crawler.api.throttling import DispatchThrottle
from retail_crawler.dispatch import RetailerCrawlDispatcher
from retail_crawler.health import get_health_service
from retail_crawler.models import Retailer, RetailerStatus
from retail_crawler.statistics import get_statistics_recorder

logger = logging.getLogger(__name__)


def _serialize_retailer(retailer: Retailer) -> dict:
    status_enum = retailer.status_enum
    return {
        'slug': retailer.slug,
        'name': retailer.name,
        'base_url': retailer.base_url,
        'scraper_key': retailer.scraper_key,
        'status': retailer.status,
        'status_label': status_enum.label,
        'status_color': status_enum.color,
        'paused_until': retailer.paused_until.isoformat() if retailer.paused_until else None,
        'consecutive_failures': retailer.consecutive_failures,
        'last_crawled_at': retailer.last_crawled_at.isoformat() if retailer.last_crawled_at else None,
        'rate_limit_ms': retailer.rate_limit_ms,
        **get_health_service().get_affordances(retailer),
    }


def _serialize_failed_job(job) -> dict:
    return {
        'id': job.pk,
        'queue': job.queue,
        'task_name': job.task_name,
        'retailer': job.retailer.slug if job.retailer else None,
        'url': job.url,
        'exception': job.exception_summary,
        'failed_at': job.failed_at.isoformat(),
        'payload': job.payload,
    }


def _get_retailer(slug):
    try:
        return Retailer.objects.get(slug=slug)
    except Retailer.DoesNotExist:
        return None


def _not_found(slug):
    return Response(
        {'error': f"Retailer '{slug}' not found"},
        status=status.HTTP_404_NOT_FOUND
    )


def _transition_response(result):
    return Response(
        result.to_dict(),
        status=status.HTTP_200_OK if result.success else status.HTTP_409_CONFLICT
    )


# ============================================================
# Retailer Endpoints
# ============================================================

@extend_schema(
    tags=['Retailers'],
    summary='List retailers',
    parameters=[
        OpenApiParameter(
            'status',
            OpenApiTypes.STR,
            description='Filter by status',
            enum=[choice.value for choice in RetailerStatus],
        ),
    ],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_retailers(request):
    """List all retailers with status and available operator actions."""
    retailers = Retailer.objects.all()

    status_filter = request.query_params.get('status')
    if status_filter:
        if status_filter not in RetailerStatus.values:
            return Response(
                {'error': f'Invalid status: {status_filter}'},
                status=status.HTTP_400_BAD_REQUEST
            )
        retailers = retailers.filter(status=status_filter)

    return Response({
        'retailers': [_serialize_retailer(retailer) for retailer in retailers],
    })


@extend_schema(tags=['Retailers'], summary='Retailer status and health metrics')
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def retailer_detail(request, slug):
    """Retailer status plus the rolling 24h health window."""
    retailer = _get_retailer(slug)
    if retailer is None:
        return _not_found(slug)

    return Response({
        **_serialize_retailer(retailer),
        'health': get_health_service().get_health_metrics(slug),
    })


@extend_schema(
    tags=['Retailers'],
    summary='Pause a retailer',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'minutes': {'type': 'integer', 'minimum': 1, 'description': 'Pause duration (default 24h)'},
                'reason': {'type': 'string'},
            },
        }
    },
    responses={200: {'description': 'Paused'}, 409: {'description': 'Retailer cannot be paused'}},
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def pause_retailer(request, slug):
    """Pause a retailer for a number of minutes."""
    retailer = _get_retailer(slug)
    if retailer is None:
        return _not_found(slug)

    minutes = request.data.get('minutes')
    if minutes is not None:
        try:
            minutes = int(minutes)
        except (TypeError, ValueError):
            minutes = 0
        if minutes < 1:
            return Response(
                {'error': 'minutes must be a positive integer'},
                status=status.HTTP_400_BAD_REQUEST
            )

    result = get_health_service().pause(
        retailer,
        minutes=minutes,
        reason=request.data.get('reason'),
        triggered_by=f'api:{request.user}',
    )
    return _transition_response(result)


@extend_schema(tags=['Retailers'], summary='Resume a paused retailer')
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def resume_retailer(request, slug):
    retailer = _get_retailer(slug)
    if retailer is None:
        return _not_found(slug)

    result = get_health_service().resume(
        retailer,
        reason=request.data.get('reason'),
        triggered_by=f'api:{request.user}',
    )
    return _transition_response(result)


@extend_schema(tags=['Retailers'], summary='Disable a retailer')
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def disable_retailer(request, slug):
    retailer = _get_retailer(slug)
    if retailer is None:
        return _not_found(slug)

    result = get_health_service().disable(
        retailer,
        reason=request.data.get('reason'),
        triggered_by=f'api:{request.user}',
    )
    return _transition_response(result)


@extend_schema(tags=['Retailers'], summary='Re-enable a disabled retailer')
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def enable_retailer(request, slug):
    retailer = _get_retailer(slug)
    if retailer is None:
        return _not_found(slug)

    result = get_health_service().enable(
        retailer,
        reason=request.data.get('reason'),
        triggered_by=f'api:{request.user}',
    )
    return _transition_response(result)


@extend_schema(tags=['Retailers'], summary='Reset retailer health')
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def reset_retailer_health(request, slug):
    """Clear the failure counter and health window; degraded/failed go back to active."""
    if _get_retailer(slug) is None:
        return _not_found(slug)

    result = get_health_service().reset_health(slug, triggered_by=f'api:{request.user}')
    return _transition_response(result)


# ============================================================
# Crawl Endpoints
# ============================================================

@extend_schema(
    tags=['Crawl'],
    summary='Dispatch retailer crawls',
    description='''
    Enqueue one crawl job per starting URL of each eligible retailer.

    Ineligible retailers (paused, disabled, unknown scraper) are reported
    as skipped with a reason.
    ''',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'retailers': {'type': 'array', 'items': {'type': 'string'}, 'description': 'Retailer slugs (default all)'},
                'queue': {'type': 'string', 'default': 'crawler'},
                'delay': {'type': 'integer', 'default': 0, 'description': 'Seconds between retailers'},
                'use_advanced_adapter': {'type': 'boolean', 'default': True},
            },
        }
    },
)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([DispatchThrottle])
def dispatch_crawls(request):
    """Dispatch crawl jobs onto the queue."""
    slugs = request.data.get('retailers')
    if slugs is not None and not isinstance(slugs, list):
        return Response(
            {'error': 'retailers must be a list of slugs'},
            status=status.HTTP_400_BAD_REQUEST
        )

    try:
        delay = int(request.data.get('delay', 0))
    except (TypeError, ValueError):
        delay = -1
    if delay < 0:
        return Response(
            {'error': 'delay must be a non-negative integer'},
            status=status.HTTP_400_BAD_REQUEST
        )

    dispatcher = RetailerCrawlDispatcher(queue=request.data.get('queue'))
    report = dispatcher.dispatch(
        slugs=slugs,
        base_delay_seconds=delay,
        use_advanced_adapter=bool(request.data.get('use_advanced_adapter', True)),
    )

    logger.info(f"API dispatch by {request.user}: {report.jobs_dispatched} job(s)")
    return Response(report.to_dict(), status=status.HTTP_202_ACCEPTED)


@extend_schema(
    tags=['Crawl'],
    summary='Crawl statistics',
    parameters=[
        OpenApiParameter('date', OpenApiTypes.DATE, description='Day to report (default today)'),
    ],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def crawl_statistics(request):
    """Totals across retailers for one day."""
    day = None
    day_param = request.query_params.get('date')
    if day_param:
        try:
            day = date.fromisoformat(day_param)
        except ValueError:
            return Response(
                {'error': 'date must be YYYY-MM-DD'},
                status=status.HTTP_400_BAD_REQUEST
            )

    return Response(get_statistics_recorder().get_summary(day))


# ============================================================
# Dead-letter Endpoints
# ============================================================

@extend_schema(
    tags=['Failed jobs'],
    summary='List failed crawl jobs',
    parameters=[
        OpenApiParameter('retailer', OpenApiTypes.STR, description='Filter by retailer slug'),
    ],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_failed_jobs(request):
    jobs = dead_letters.list_failed_jobs(request.query_params.get('retailer'))
    return Response({
        'count': len(jobs),
        'failed_jobs': [_serialize_failed_job(job) for job in jobs],
    })


@extend_schema(tags=['Failed jobs'], summary='Retry a failed crawl job')
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def retry_failed_job(request, job_id):
    """Re-enqueue a failed job on its original queue and remove it."""
    if not dead_letters.retry_failed_job(job_id):
        return Response(
            {'error': 'Failed job not found'},
            status=status.HTTP_404_NOT_FOUND
        )
    return Response({'retried': job_id})


@extend_schema(tags=['Failed jobs'], summary='Retry all failed crawl jobs')
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def retry_all_failed_jobs(request):
    return Response({'retried': dead_letters.retry_all_failed_jobs()})


@extend_schema(tags=['Failed jobs'], summary='Delete a failed crawl job')
@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def delete_failed_job(request, job_id):
    if not dead_letters.delete_failed_job(job_id):
        return Response(
            {'error': 'Failed job not found'},
            status=status.HTTP_404_NOT_FOUND
        )
    return Response(status=status.HTTP_204_NO_CONTENT)
