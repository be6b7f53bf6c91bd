"""
Celery configuration for the Retail Crawler service.

Crawl jobs run on the ``crawler`` queue; scheduled housekeeping (the daily
dispatch and the pause-expiry sweep) runs on ``default``.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("retail_crawler")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Configure task queues for different operations
app.conf.task_queues = {
    "crawler": {
        "exchange": "crawler",
        "routing_key": "crawler",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

# Default task routing
app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

# Configure Celery Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Off-peak daily crawl of every eligible retailer
    "dispatch-retailer-crawls-daily": {
        "task": "retail_crawler.tasks.scheduled_dispatch_all",
        "schedule": crontab(hour=2, minute=0),
    },
    # Pause-expiry sweep
    "resume-expired-retailers-hourly": {
        "task": "retail_crawler.tasks.resume_expired_paused_retailers",
        "schedule": crontab(minute=5),
    },
}
