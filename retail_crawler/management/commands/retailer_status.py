"""
Management command to inspect or change a retailer's status.

Usage:
    python manage.py retailer_status bm status
    python manage.py retailer_status bm pause --minutes=120 --reason="site maintenance"
    python manage.py retailer_status bm resume
    python manage.py retailer_status bm disable --reason="blocked by retailer"
    python manage.py retailer_status bm enable
"""

from django.core.management.base import BaseCommand, CommandError

from retail_crawler.health import get_health_service
from retail_crawler.models import Retailer

ACTIONS = ('status', 'pause', 'resume', 'disable', 'enable')


class Command(BaseCommand):
    """Operator control over one retailer's health status."""

    help = 'Show or change the status of a retailer'

    def add_arguments(self, parser):
        parser.add_argument('slug', help='Retailer slug')
        parser.add_argument('action', choices=ACTIONS, help='Action to perform')
        parser.add_argument(
            '--minutes',
            type=int,
            default=None,
            help='Pause duration in minutes (default: CRAWLER_DEFAULT_PAUSE_MINUTES)',
        )
        parser.add_argument('--reason', default=None, help='Reason recorded with the change')

    def handle(self, *args, **options):
        try:
            retailer = Retailer.objects.get(slug=options['slug'])
        except Retailer.DoesNotExist:
            raise CommandError(f"Retailer '{options['slug']}' not found")

        health = get_health_service()
        action = options['action']

        if action == 'status':
            self._show_status(retailer, health)
            return

        if options['minutes'] is not None and options['minutes'] < 1:
            raise CommandError('--minutes must be a positive integer')

        if action == 'pause':
            result = health.pause(
                retailer,
                minutes=options['minutes'],
                reason=options['reason'],
                triggered_by='command',
            )
        else:
            result = getattr(health, action)(retailer, reason=options['reason'], triggered_by='command')

        if not result.success:
            raise CommandError(result.message)

        self.stdout.write(self.style.SUCCESS(result.message))
        if retailer.paused_until:
            self.stdout.write(f'Paused until {retailer.paused_until.isoformat()}')

    def _show_status(self, retailer, health):
        status = retailer.status_enum
        self.stdout.write(f'{retailer.name} ({retailer.slug})')
        self.stdout.write(f'  Status: {status.label} - {status.description}')
        if retailer.paused_until:
            self.stdout.write(f'  Paused until: {retailer.paused_until.isoformat()}')
        self.stdout.write(f'  Consecutive failures: {retailer.consecutive_failures}')
        self.stdout.write(f'  Scraper: {retailer.scraper_key or "-"}')

        reason = health.get_skip_reason(retailer)
        self.stdout.write(f'  Eligible: {"no (" + reason + ")" if reason else "yes"}')

        affordances = [name[len('can_'):] for name, allowed in health.get_affordances(retailer).items() if allowed]
        self.stdout.write(f'  Available actions: {", ".join(affordances) or "none"}')
