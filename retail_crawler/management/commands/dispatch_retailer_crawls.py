"""
Management command to dispatch retailer crawls.

Usage:
    python manage.py dispatch_retailer_crawls
    python manage.py dispatch_retailer_crawls --retailer=bm --retailer=pets-at-home
    python manage.py dispatch_retailer_crawls --delay=300 --queue=crawler
    python manage.py dispatch_retailer_crawls --retailer=bm --sync --standard-adapter
"""

import logging

from django.core.management.base import BaseCommand, CommandError

from retail_crawler.dispatch import RetailerCrawlDispatcher

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Dispatch crawl jobs for eligible retailers."""

    help = 'Dispatch crawl jobs for eligible retailers (all retailers unless --retailer is given)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--retailer',
            action='append',
            dest='retailers',
            metavar='SLUG',
            help='Retailer slug to dispatch; repeat for several (default: all)',
        )
        parser.add_argument(
            '--queue',
            default=None,
            help='Queue to enqueue crawl jobs on (default: CRAWLER_DISPATCH_QUEUE)',
        )
        parser.add_argument(
            '--delay',
            type=int,
            default=0,
            help='Seconds of delay added per dispatched retailer (default: 0)',
        )
        parser.add_argument(
            '--sync',
            action='store_true',
            help='Execute crawl jobs inline instead of enqueueing them',
        )
        parser.add_argument(
            '--standard-adapter',
            action='store_true',
            help='Fetch with the standard HTTP adapter instead of the anti-bot adapter',
        )

    def handle(self, *args, **options):
        if options['delay'] < 0:
            raise CommandError('--delay must not be negative')

        dispatcher = RetailerCrawlDispatcher(queue=options['queue'])
        report = dispatcher.dispatch(
            slugs=options['retailers'],
            base_delay_seconds=options['delay'],
            sync=options['sync'],
            use_advanced_adapter=not options['standard_adapter'],
        )

        for skipped in report.skipped:
            self.stdout.write(self.style.WARNING(f'  Skipped {skipped.slug}: {skipped.reason}'))

        for outcome in report.outcomes:
            line = f'  {outcome.status}: {outcome.url}'
            if outcome.reason:
                line += f' ({outcome.reason})'
            style = self.style.SUCCESS if outcome.succeeded else self.style.WARNING
            self.stdout.write(style(line))

        verb = 'Executed' if options['sync'] else 'Dispatched'
        self.stdout.write(
            self.style.SUCCESS(
                f'{verb} {report.jobs_dispatched} job(s) for '
                f'{len(report.retailers_dispatched)} retailer(s), '
                f'{report.retailers_skipped} skipped (crawl {report.crawl_id})'
            )
        )
