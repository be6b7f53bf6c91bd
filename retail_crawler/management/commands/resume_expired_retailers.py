"""
Management command to resume retailers whose pause has expired.

Runs the same sweep as the hourly beat task, without the scheduling guards.

Usage:
    python manage.py resume_expired_retailers
"""

from django.core.management.base import BaseCommand

from retail_crawler.health import get_health_service


class Command(BaseCommand):
    help = 'Resume paused retailers whose pause has expired'

    def handle(self, *args, **options):
        resumed = get_health_service().resume_expired()

        if not resumed:
            self.stdout.write('No expired pauses')
            return

        for retailer in resumed:
            self.stdout.write(f'  Resumed {retailer.slug}')
        self.stdout.write(self.style.SUCCESS(f'Resumed {len(resumed)} retailer(s)'))
