from django.core.management.base import BaseCommand

from trackops.core.cache_utils import invalidate_dashboard_cache
from trackops.subscriptions.services import check_expiry


class Command(BaseCommand):
    help = 'Re-evaluates subscription statuses and sends due expiry reminders'

    def add_arguments(self, parser):
        parser.add_argument(
            '--no-notify',
            action='store_true',
            help='Update statuses only; do not send reminders',
        )

    def handle(self, *args, **options):
        summary = check_expiry(send_notifications=not options['no_notify'])
        if summary['status_changed']:
            invalidate_dashboard_cache()

        self.stdout.write(f"Checked: {summary['checked']}")
        self.stdout.write(f"Status changed: {summary['status_changed']}")
        self.stdout.write(self.style.WARNING(f"Expiring soon: {summary['expiring_soon']}"))
        self.stdout.write(self.style.ERROR(f"Expired: {summary['expired']}"))
        self.stdout.write(self.style.SUCCESS(f"Reminders sent: {summary['reminders_sent']}"))
