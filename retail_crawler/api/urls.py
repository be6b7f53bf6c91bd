"""
Operator API URL configuration.

Endpoints:
- GET    /api/v1/retailers/                       - List retailers with status
- GET    /api/v1/retailers/<slug>/                - Retailer status and health metrics
- POST   /api/v1/retailers/<slug>/pause/          - Pause a retailer
- POST   /api/v1/retailers/<slug>/resume/         - Resume a paused retailer
- POST   /api/v1/retailers/<slug>/disable/        - Disable a retailer
- POST   /api/v1/retailers/<slug>/enable/         - Re-enable a disabled retailer
- POST   /api/v1/retailers/<slug>/reset-health/   - Clear failure counter and metrics
- POST   /api/v1/dispatch/                        - Dispatch retailer crawls
- GET    /api/v1/stats/                           - Crawl statistics for a day
- GET    /api/v1/failed-jobs/                     - List dead-lettered jobs
- POST   /api/v1/failed-jobs/retry-all/           - Retry every dead-lettered job
- POST   /api/v1/failed-jobs/<id>/retry/          - Retry one dead-lettered job
- DELETE /api/v1/failed-jobs/<id>/                - Delete one dead-lettered job
"""

from django.urls import path

from retail_crawler.api.views import (
    delete_failed_job,
    disable_retailer,
    dispatch_crawls,
    enable_retailer,
    list_failed_jobs,
    list_retailers,
    pause_retailer,
    reset_retailer_health,
    resume_retailer,
    retailer_detail,
    retry_all_failed_jobs,
    retry_failed_job,
    crawl_statistics,
)

app_name = 'retail_crawler_api'

urlpatterns = [
    # Retailer endpoints
    path('retailers/', list_retailers, name='list_retailers'),
    path('retailers/<slug:slug>/', retailer_detail, name='retailer_detail'),
    path('retailers/<slug:slug>/pause/', pause_retailer, name='pause_retailer'),
    path('retailers/<slug:slug>/resume/', resume_retailer, name='resume_retailer'),
    path('retailers/<slug:slug>/disable/', disable_retailer, name='disable_retailer'),
    path('retailers/<slug:slug>/enable/', enable_retailer, name='enable_retailer'),
    path('retailers/<slug:slug>/reset-health/', reset_retailer_health, name='reset_retailer_health'),

    # Crawl endpoints
    path('dispatch/', dispatch_crawls, name='dispatch_crawls'),
    path('stats/', crawl_statistics, name='crawl_statistics'),

    # Dead-letter endpoints
    path('failed-jobs/', list_failed_jobs, name='list_failed_jobs'),
    path('failed-jobs/retry-all/', retry_all_failed_jobs, name='retry_all_failed_jobs'),
    path('failed-jobs/<int:job_id>/retry/', retry_failed_job, name='retry_failed_job'),
    path('failed-jobs/<int:job_id>/', delete_failed_job, name='delete_failed_job'),
]
