"""
Management command to manage dead-lettered crawl jobs.

Usage:
    python manage.py failed_crawl_jobs list
    python manage.py failed_crawl_jobs list --retailer=bm
    python manage.py failed_crawl_jobs retry 42
    python manage.py failed_crawl_jobs delete 42
    python manage.py failed_crawl_jobs retry-all
"""

from django.core.management.base import BaseCommand, CommandError

from retail_crawler import dead_letters


class Command(BaseCommand):
    """List, retry or delete failed crawl jobs."""

    help = 'List, retry or delete failed crawl jobs'

    def add_arguments(self, parser):
        parser.add_argument('action', choices=('list', 'retry', 'delete', 'retry-all'))
        parser.add_argument('job_id', nargs='?', type=int, help='Failed job id (retry/delete)')
        parser.add_argument('--retailer', default=None, help='Only list jobs for this retailer slug')

    def handle(self, *args, **options):
        action = options['action']
        job_id = options['job_id']

        if action in ('retry', 'delete') and job_id is None:
            raise CommandError(f'{action} needs a job id')

        if action == 'list':
            jobs = dead_letters.list_failed_jobs(options['retailer'])
            if not jobs:
                self.stdout.write('No failed crawl jobs')
                return
            for job in jobs:
                retailer = job.retailer.slug if job.retailer else '-'
                self.stdout.write(
                    f'{job.pk:>6}  {job.failed_at:%Y-%m-%d %H:%M}  {retailer:<20} '
                    f'{job.url}  {job.exception_summary}'
                )
            self.stdout.write(f'{len(jobs)} failed job(s)')

        elif action == 'retry':
            if not dead_letters.retry_failed_job(job_id):
                raise CommandError(f'Failed job {job_id} not found')
            self.stdout.write(self.style.SUCCESS(f'Re-enqueued job {job_id}'))

        elif action == 'delete':
            if not dead_letters.delete_failed_job(job_id):
                raise CommandError(f'Failed job {job_id} not found')
            self.stdout.write(self.style.SUCCESS(f'Deleted job {job_id}'))

        else:
            count = dead_letters.retry_all_failed_jobs()
            self.stdout.write(self.style.SUCCESS(f'Re-enqueued {count} job(s)'))
