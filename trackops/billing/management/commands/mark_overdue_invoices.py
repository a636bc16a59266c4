from django.core.management.base import BaseCommand

from trackops.billing.services import mark_overdue_invoices
from trackops.core.cache_utils import invalidate_dashboard_cache


class Command(BaseCommand):
    help = 'Marks sent and partially paid invoices past their due date as OVERDUE'

    def handle(self, *args, **options):
        count = mark_overdue_invoices()
        if count:
            invalidate_dashboard_cache()
            self.stdout.write(self.style.WARNING(f"Marked {count} invoice(s) overdue"))
        else:
            self.stdout.write(self.style.SUCCESS("No overdue invoices"))
